#!/usr/bin/env python
"""Minimal GUI for midi_to_mml (Tkinter)."""

import os
import tkinter as tk
from tkinter import filedialog

from .midi_to_mml import convert
from .models import DEFAULT_CHAR_LIMIT
from .settings import load_settings, options_from_settings, save_settings
from .voice_view import SORT_ORDERS, sort_voices
from .voices import MELODY_POLICIES, MODES

THEMES = {
    "dark": {
        "bg": "#1e1e1e",
        "panel": "#252526",
        "fg": "#e6e6e6",
        "entry_bg": "#2d2d30",
        "button_bg": "#3a3a3a",
        "accent": "#7bd88f",
        "warning": "#e6b422",
        "error": "#e86a6a",
        "tooltip_bg": "#202225",
        "tooltip_fg": "#e6e6e6",
        "tooltip_border": "#3a3a3a",
    },
    "light": {
        "bg": "#f4f4f4",
        "panel": "#ffffff",
        "fg": "#1f1f1f",
        "entry_bg": "#ffffff",
        "button_bg": "#e6e6e6",
        "accent": "#2f8f5b",
        "warning": "#c28a1b",
        "error": "#b84b4b",
        "tooltip_bg": "#f0f0f0",
        "tooltip_fg": "#1f1f1f",
        "tooltip_border": "#c0c0c0",
    },
}


class Tooltip:
    def __init__(self, widget: tk.Widget, text, palette_getter=None) -> None:
        self.widget = widget
        self.text = text
        self.palette_getter = palette_getter
        self._tip = None
        self._after = None
        widget.bind("<Enter>", self._schedule)
        widget.bind("<Leave>", self._hide)
        widget.bind("<ButtonPress>", self._hide)

    def _schedule(self, _event=None) -> None:
        self._after = self.widget.after(500, self._show)

    def _show(self) -> None:
        if self._tip:
            return
        text = self.text() if callable(self.text) else self.text
        if not text:
            return
        x = self.widget.winfo_rootx() + 12
        y = self.widget.winfo_rooty() + self.widget.winfo_height() + 8
        bg, fg, border = self.palette_getter() if self.palette_getter else ("#202225", "#e6e6e6", "#3a3a3a")
        self._tip = tk.Toplevel(self.widget)
        self._tip.wm_overrideredirect(True)
        self._tip.wm_geometry(f"+{x}+{y}")
        tk.Label(
            self._tip,
            text=text,
            justify="left",
            background=bg,
            foreground=fg,
            relief="solid",
            borderwidth=1,
            padx=6,
            pady=4,
            wraplength=380,
            highlightbackground=border,
        ).pack()

    def _hide(self, _event=None) -> None:
        if self._after:
            self.widget.after_cancel(self._after)
            self._after = None
        if self._tip:
            self._tip.destroy()
            self._tip = None


class App(tk.Tk):
    def __init__(self) -> None:
        super().__init__()
        self.title("midi_to_mml")
        self.geometry("880x640")

        self.settings = load_settings()
        self.input_var = tk.StringVar()
        self.mode_var = tk.StringVar(value=self.settings["mode"])
        self.char_limit_var = tk.StringVar(value=str(self.settings["char_limit"]))
        self.compress_var = tk.BooleanVar(value=bool(self.settings["compress_mode"]))
        self.melody_policy_var = tk.StringVar(value=self.settings["melody_policy"])
        self.sort_var = tk.StringVar(value=self.settings["sort"])
        self.dark_mode_var = tk.BooleanVar(value=True)
        self.tooltip_lang_var = tk.StringVar(value="KO")
        self.status_var = tk.StringVar(value="")
        self._option_menus = []
        self._result = None
        self._shown = []

        self._build_ui()
        self._apply_theme()
        self.protocol("WM_DELETE_WINDOW", self._on_close)

    def _build_ui(self) -> None:
        pad = {"padx": 8, "pady": 6}
        tt = self._tt

        row = 0
        lbl_input = tk.Label(self, text="MIDI")
        lbl_input.grid(row=row, column=0, sticky="w", **pad)
        ent_input = tk.Entry(self, textvariable=self.input_var, width=60)
        ent_input.grid(row=row, column=1, columnspan=3, sticky="we", **pad)
        btn_input = tk.Button(self, text="Browse", command=self._browse_input)
        btn_input.grid(row=row, column=4, **pad)
        tt(ent_input, "변환할 MIDI 파일 경로.", "Path of the MIDI file to convert.")

        row += 1
        lbl_mode = tk.Label(self, text="Mode")
        lbl_mode.grid(row=row, column=0, sticky="w", **pad)
        mode_menu = self._option_menu(self, self.mode_var, list(MODES))
        mode_menu.grid(row=row, column=1, sticky="w", **pad)
        tt(
            mode_menu,
            "normal: 겹치는 음을 멜로디/화음으로 분리. instrument: 악기별로 분리.",
            "normal: split overlapping notes into melody/harmony. instrument: split per instrument.",
        )

        lbl_limit = tk.Label(self, text="Char limit")
        lbl_limit.grid(row=row, column=2, sticky="e", **pad)
        ent_limit = tk.Entry(self, textvariable=self.char_limit_var, width=8)
        ent_limit.grid(row=row, column=3, sticky="w", **pad)
        tt(ent_limit, "악보 하나당 최대 글자 수 (권장 500-5000).", "Max characters per voice (500-5000 recommended).")

        chk_compress = tk.Checkbutton(self, text="Compress", variable=self.compress_var)
        chk_compress.grid(row=row, column=4, sticky="w", **pad)
        tt(
            chk_compress,
            "글자 수 우선: 점음표와 붙임줄 없이 가까운 길이로 맞춤.",
            "Favor characters: no dotted lengths or ties, nearest length wins.",
        )

        row += 1
        lbl_policy = tk.Label(self, text="Melody")
        lbl_policy.grid(row=row, column=0, sticky="w", **pad)
        policy_menu = self._option_menu(self, self.melody_policy_var, list(MELODY_POLICIES))
        policy_menu.grid(row=row, column=1, sticky="w", **pad)
        tt(
            policy_menu,
            "first: 가장 높은 음이 멜로디. contour: 이전 멜로디와 가까운 음을 우선.",
            "first: highest note leads. contour: prefer the note closest to the previous melody.",
        )

        lbl_sort = tk.Label(self, text="Sort")
        lbl_sort.grid(row=row, column=2, sticky="e", **pad)
        sort_menu = self._option_menu(self, self.sort_var, list(SORT_ORDERS), command=lambda _v: self._refresh_list())
        sort_menu.grid(row=row, column=3, sticky="w", **pad)

        btn_run = tk.Button(self, text="Convert", command=self._run)
        btn_run.grid(row=row, column=4, sticky="we", **pad)

        row += 1
        chk_dark = tk.Checkbutton(self, text="Dark mode", variable=self.dark_mode_var, command=self._apply_theme)
        chk_dark.grid(row=row, column=0, columnspan=2, sticky="w", **pad)
        lang_menu = self._option_menu(self, self.tooltip_lang_var, ["KO", "EN"])
        lang_menu.grid(row=row, column=2, sticky="e", **pad)
        tk.Label(self, textvariable=self.status_var).grid(row=row, column=3, columnspan=2, sticky="w", **pad)

        row += 1
        self.voice_list = tk.Listbox(self, height=10, exportselection=False)
        self.voice_list.grid(row=row, column=0, columnspan=2, sticky="nsew", **pad)
        self.voice_list.bind("<<ListboxSelect>>", self._show_selected)
        self.preview = tk.Text(self, height=10, wrap="char")
        self.preview.grid(row=row, column=2, columnspan=3, sticky="nsew", **pad)

        row += 1
        btn_copy = tk.Button(self, text="Copy MML", command=self._copy_selected)
        btn_copy.grid(row=row, column=4, sticky="we", **pad)
        tt(btn_copy, "선택한 악보를 클립보드에 복사.", "Copy the selected voice to the clipboard.")

        row += 1
        self.console = tk.Text(self, height=8)
        self.console.grid(row=row, column=0, columnspan=5, sticky="nsew", **pad)

        self.grid_columnconfigure(1, weight=1)
        self.grid_columnconfigure(3, weight=1)
        self.grid_rowconfigure(4, weight=1)

    def _browse_input(self) -> None:
        path = filedialog.askopenfilename(
            title="Select MIDI file",
            filetypes=[("MIDI files", "*.mid *.midi"), ("All files", "*.*")],
        )
        if path:
            self.input_var.set(path)

    def _current_settings(self) -> dict:
        settings = dict(self.settings)
        settings["mode"] = self.mode_var.get()
        settings["compress_mode"] = bool(self.compress_var.get())
        settings["melody_policy"] = self.melody_policy_var.get()
        settings["sort"] = self.sort_var.get()
        try:
            settings["char_limit"] = int(self.char_limit_var.get().strip())
        except ValueError:
            settings["char_limit"] = DEFAULT_CHAR_LIMIT
            self.char_limit_var.set(str(DEFAULT_CHAR_LIMIT))
            self._log(f"Warning: invalid char limit, using {DEFAULT_CHAR_LIMIT}.")
        return settings

    def _save_settings(self) -> None:
        self.settings = self._current_settings()
        try:
            save_settings(self.settings)
        except OSError as exc:
            self._log(f"Warning: settings not saved ({exc}).")

    def _run(self) -> None:
        path = self.input_var.get().strip()
        if not path:
            self._log("Error: select a MIDI file first.")
            return
        if not os.path.exists(path):
            self._log("Error: MIDI file not found.")
            return
        self._save_settings()
        try:
            with open(path, "rb") as f:
                data = f.read()
        except OSError as exc:
            self._log(f"Error: cannot read MIDI file ({exc}).")
            return

        self._log(f"Converting {os.path.basename(path)} ...")
        result = convert(data, options_from_settings(self.settings))
        if not result.success:
            self._result = None
            self._refresh_list()
            self._log(f"Error: {result.error}")
            return
        self._result = result
        for w in result.warnings:
            self._log(f"Warning: {w}")
        self.status_var.set(f"BPM {result.bpm} / notes {result.total_notes} / voices {len(result.voices)}")
        self._refresh_list()
        self._log("Done.")

    def _refresh_list(self) -> None:
        self.voice_list.delete(0, "end")
        self.preview.delete("1.0", "end")
        if not self._result:
            self._shown = []
            return
        self._shown = sort_voices(self._result.voices, self.sort_var.get())
        for v in self._shown:
            self.voice_list.insert(
                "end", f"{v.name}  {v.char_count}ch  {v.note_count}n  {v.duration:.1f}s"
            )

    def _selected_voice(self):
        sel = self.voice_list.curselection()
        if not sel:
            return None
        return self._shown[sel[0]]

    def _show_selected(self, _event=None) -> None:
        voice = self._selected_voice()
        self.preview.delete("1.0", "end")
        if voice:
            self.preview.insert("1.0", voice.content)

    def _copy_selected(self) -> None:
        voice = self._selected_voice()
        if not voice:
            self._log("Error: no voice selected.")
            return
        self.clipboard_clear()
        self.clipboard_append(voice.content)
        self._log(f"Copied {voice.name} ({voice.char_count} chars).")

    def _on_close(self) -> None:
        self._save_settings()
        self.destroy()

    def _option_menu(self, parent, variable, values, command=None):
        menu = tk.OptionMenu(parent, variable, *values, command=command)
        self._option_menus.append(menu)
        return menu

    def _get_theme(self) -> dict:
        return THEMES["dark"] if self.dark_mode_var.get() else THEMES["light"]

    def _tooltip_palette(self):
        t = self._get_theme()
        return t["tooltip_bg"], t["tooltip_fg"], t["tooltip_border"]

    def _tt(self, widget, ko: str, en: str) -> None:
        def _text():
            return en if self.tooltip_lang_var.get() == "EN" else ko

        Tooltip(widget, _text, palette_getter=self._tooltip_palette)

    def _iter_widgets(self, root):
        stack = [root]
        while stack:
            w = stack.pop()
            yield w
            stack.extend(w.winfo_children())

    def _apply_theme(self) -> None:
        t = self._get_theme()
        self.configure(bg=t["bg"])
        for w in self._iter_widgets(self):
            self._apply_theme_to_widget(w, t)
        self.console.tag_configure("warning", foreground=t["warning"])
        self.console.tag_configure("error", foreground=t["error"])
        self.console.tag_configure("ok", foreground=t["accent"])
        for menu in self._option_menus:
            menu["menu"].configure(
                bg=t["panel"],
                fg=t["fg"],
                activebackground=t["button_bg"],
                activeforeground=t["fg"],
            )

    def _apply_theme_to_widget(self, widget, t):
        if isinstance(widget, tk.Label):
            widget.configure(bg=t["bg"], fg=t["fg"])
        elif isinstance(widget, (tk.Entry, tk.Text, tk.Listbox)):
            widget.configure(bg=t["entry_bg"], fg=t["fg"], highlightbackground=t["panel"])
            if not isinstance(widget, tk.Listbox):
                widget.configure(insertbackground=t["fg"])
        elif isinstance(widget, tk.Checkbutton):
            widget.configure(
                bg=t["bg"],
                fg=t["fg"],
                activebackground=t["bg"],
                activeforeground=t["fg"],
                selectcolor=t["bg"],
            )
        elif isinstance(widget, (tk.Button, tk.Menubutton)):
            widget.configure(
                bg=t["button_bg"],
                fg=t["fg"],
                activebackground=t["panel"],
                activeforeground=t["fg"],
            )

    def _log(self, msg: str) -> None:
        tag = None
        if msg.startswith("Warning:"):
            tag = "warning"
        elif msg.startswith("Error:"):
            tag = "error"
        elif msg == "Done.":
            tag = "ok"
        self.console.insert("end", msg + "\n", tag)
        self.console.see("end")


def main() -> int:
    app = App()
    app.mainloop()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
