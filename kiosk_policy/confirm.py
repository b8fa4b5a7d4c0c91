# confirm.py
# Confirmation capabilities for destructive operations

from loguru import logger


class ConsoleConfirmer:
    """Ask on the console; only an explicit 'yes' counts."""

    def __init__(self, input_func=input):
        self.input_func = input_func

    def confirm(self, prompt):
        try:
            answer = self.input_func(f"{prompt} Type 'yes' to continue: ")
        except (EOFError, OSError):
            # no console attached
            return False
        return answer.strip().lower() == "yes"


class AutoConfirmer:
    """Non-interactive runs: the flag on the command line is the confirmation."""

    def confirm(self, prompt):
        logger.info(f"[confirm] Non-interactive mode, proceeding: {prompt}")
        return True


class DialogConfirmer:
    """Yes/No message box, for runs launched from a shortcut without a console."""

    def __init__(self, title="Kiosk_Deployer"):
        self.title = title

    def confirm(self, prompt):
        import tkinter as tk
        from tkinter import messagebox

        root = tk.Tk()
        root.withdraw()
        root.attributes("-topmost", True)
        try:
            return bool(messagebox.askyesno(self.title, prompt, icon=messagebox.WARNING, parent=root))
        finally:
            root.destroy()


def default_confirmer(non_interactive=False, dialog=False):
    if non_interactive:
        return AutoConfirmer()
    if dialog:
        return DialogConfirmer()
    return ConsoleConfirmer()
