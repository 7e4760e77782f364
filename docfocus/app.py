from __future__ import annotations

import argparse
import logging
import queue
import sys
import tkinter as tk
from concurrent.futures import Future
from datetime import datetime
from pathlib import Path
from tkinter import filedialog, messagebox, ttk
from tkinter.scrolledtext import ScrolledText

from . import __version__
from .aggregator import TrackingAggregator
from .database import DocFocusDatabase
from .errors import DatabaseUnavailableError
from .export import default_export_name, write_csv
from .models import SaveResult
from .paths import data_directory, database_path, ensure_directories, log_path
from .scheduler import DEFAULT_INTERVAL_SECONDS, TrackingScheduler, clamp_interval
from .session import MonitorSession, application_label

INTERVAL_SETTING_KEY = "sample_interval_seconds"
LAST_APPLICATION_SETTING_KEY = "last_application"
COLUMNS = ("document", "total_time", "project", "notes")

logger = logging.getLogger(__name__)


def configure_logging(level: str = "INFO", log_file: Path | None = None) -> None:
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file is not None:
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=handlers,
        force=True,
    )


class DocFocusApp(tk.Tk):
    def __init__(self, db: DocFocusDatabase):
        super().__init__()
        self.title("DocFocus")
        self.geometry("1100x680")
        self.minsize(820, 480)

        self.db = db
        self.aggregator = TrackingAggregator()
        self.aggregator.seed(self.db.load_documents())
        self.session = MonitorSession()
        self.scheduler = TrackingScheduler(self.aggregator, self.db, self.session)
        self.events: queue.Queue[tuple[str, object]] = queue.Queue()

        self.application_var = tk.StringVar(value=application_label(None))
        self.status_var = tk.StringVar(value="Status: Not monitoring")
        self.project_var = tk.StringVar()
        self.notes_var = tk.StringVar()
        self.new_project_var = tk.StringVar()
        self._selected_name: str | None = None
        self._shown_errors: set[str] = set()

        self._build_shell()
        self._refresh_table()
        self._append_log(f"DocFocus started with {len(self.aggregator)} stored documents.")

        interval = clamp_interval(self.db.get_setting_float(INTERVAL_SETTING_KEY, DEFAULT_INTERVAL_SECONDS))
        self.scheduler.start(
            interval_seconds=interval,
            on_update=self._on_documents_updated,
            on_error=self._on_scheduler_error,
        )
        self.protocol("WM_DELETE_WINDOW", self._on_close)
        self.after(250, self._drain_events)

    def _build_shell(self) -> None:
        self.columnconfigure(0, weight=1)
        self.rowconfigure(1, weight=1)

        toolbar = ttk.Frame(self, padding=8)
        toolbar.grid(row=0, column=0, sticky="ew")
        toolbar.columnconfigure(3, weight=1)

        ttk.Button(toolbar, text="Select Application", command=self._select_application).grid(row=0, column=0, padx=(0, 6))
        ttk.Label(toolbar, textvariable=self.application_var).grid(row=0, column=1, padx=(0, 10))
        ttk.Button(toolbar, text="Show Projects", command=self._show_projects).grid(row=0, column=2, padx=(0, 6))
        ttk.Label(toolbar, textvariable=self.status_var).grid(row=0, column=3, sticky="w")
        ttk.Button(toolbar, text="Save", command=self._save_data).grid(row=0, column=4, padx=(6, 0))
        ttk.Button(toolbar, text="Export", command=self._export_data).grid(row=0, column=5, padx=(6, 0))
        ttk.Button(toolbar, text="Clear All Data", command=self._clear_data).grid(row=0, column=6, padx=(6, 0))

        table_frame = ttk.Frame(self, padding=(8, 0))
        table_frame.grid(row=1, column=0, sticky="nsew")
        table_frame.columnconfigure(0, weight=1)
        table_frame.rowconfigure(0, weight=1)

        self.table = ttk.Treeview(table_frame, columns=COLUMNS, show="headings", selectmode="browse")
        for column, heading, width in (
            ("document", "Document", 260),
            ("total_time", "Total Time", 100),
            ("project", "Project", 200),
            ("notes", "Notes", 400),
        ):
            self.table.heading(column, text=heading)
            self.table.column(column, width=width, anchor="w")
        self.table.grid(row=0, column=0, sticky="nsew")
        scrollbar = ttk.Scrollbar(table_frame, orient=tk.VERTICAL, command=self.table.yview)
        scrollbar.grid(row=0, column=1, sticky="ns")
        self.table.configure(yscrollcommand=scrollbar.set)
        self.table.bind("<<TreeviewSelect>>", self._on_row_selected)

        editor = ttk.Frame(self, padding=8)
        editor.grid(row=2, column=0, sticky="ew")
        editor.columnconfigure(3, weight=1)
        ttk.Label(editor, text="Project").grid(row=0, column=0, padx=(0, 4))
        ttk.Entry(editor, textvariable=self.project_var, width=24).grid(row=0, column=1, padx=(0, 10))
        ttk.Label(editor, text="Notes").grid(row=0, column=2, padx=(0, 4))
        ttk.Entry(editor, textvariable=self.notes_var).grid(row=0, column=3, sticky="ew", padx=(0, 10))
        ttk.Button(editor, text="Apply", command=self._apply_edits).grid(row=0, column=4)

        ttk.Label(editor, text="New project").grid(row=1, column=0, padx=(0, 4), pady=(6, 0))
        ttk.Entry(editor, textvariable=self.new_project_var, width=24).grid(row=1, column=1, padx=(0, 10), pady=(6, 0))
        ttk.Button(editor, text="Add Project", command=self._add_project).grid(row=1, column=2, columnspan=2, sticky="w", pady=(6, 0))

        self.log_output = ScrolledText(self, height=6, state="disabled")
        self.log_output.grid(row=3, column=0, sticky="ew", padx=8, pady=(0, 8))

    def _select_application(self) -> None:
        last = self.db.get_setting(LAST_APPLICATION_SETTING_KEY, "") or ""
        initial_dir = str(Path(last).parent) if last else None
        if sys.platform == "darwin":
            chosen = filedialog.askdirectory(
                title="Select Application",
                initialdir=initial_dir or "/Applications",
                mustexist=True,
            )
            if chosen and not chosen.endswith(".app"):
                messagebox.showerror("Select Application", "Choose an application bundle (.app).")
                return
        else:
            chosen = filedialog.askopenfilename(title="Select Application", initialdir=initial_dir)
        if not chosen:
            return

        self.scheduler.select_application(chosen)
        self.db.set_setting(LAST_APPLICATION_SETTING_KEY, chosen)
        self._shown_errors.clear()
        self.application_var.set(application_label(chosen))
        self.status_var.set("Status: Monitoring")
        self._append_log(f"Monitoring {chosen}")

    def _show_projects(self) -> None:
        projects = self.db.list_projects()
        if not projects:
            messagebox.showinfo("Projects", "No projects yet.")
            return
        messagebox.showinfo("Projects", "\n".join(project.name for project in projects))

    def _add_project(self) -> None:
        name = self.new_project_var.get().strip()
        if not name:
            return
        project_id = self.db.ensure_project(name)
        self.new_project_var.set("")
        self._append_log(f"Project ready: {name} (id={project_id})")

    def _save_data(self) -> None:
        future = self.scheduler.save_all()
        future.add_done_callback(lambda done: self.events.put(("saved", done)))

    def _export_data(self) -> None:
        target = filedialog.asksaveasfilename(
            title="Save your csv",
            defaultextension=".csv",
            initialdir=str(Path.home() / "Documents"),
            initialfile=default_export_name(),
            filetypes=[("CSV", "*.csv"), ("All files", "*.*")],
        )
        if not target:
            self._append_log("Export canceled.")
            return
        try:
            write_csv(self.aggregator.export_rows(), Path(target))
        except OSError as exc:
            messagebox.showerror("Export", f"Could not write {target}: {exc}")
            return
        self._append_log(f"Exported CSV: {target}")

    def _clear_data(self) -> None:
        if not messagebox.askyesno("Clear All Data", "Delete every tracked document and project?"):
            return
        future = self.scheduler.clear_all()
        future.add_done_callback(lambda done: self.events.put(("cleared", done)))
        self._selected_name = None
        self._refresh_table()

    def _on_row_selected(self, _event=None) -> None:
        selection = self.table.selection()
        if not selection:
            return
        name = selection[0]
        document = self.aggregator.get(name)
        if document is None:
            return
        self._selected_name = name
        self.project_var.set(document.project)
        self.notes_var.set(document.notes)

    def _apply_edits(self) -> None:
        name = self._selected_name
        if name is None:
            return
        try:
            self.aggregator.set_project(name, self.project_var.get().strip())
            self.aggregator.set_notes(name, self.notes_var.get())
        except KeyError:
            self._append_log(f"Document no longer tracked: {name}")
            return
        self._refresh_table()

    def _on_documents_updated(self, documents) -> None:
        self.events.put(("updated", documents))

    def _on_scheduler_error(self, kind: str, message: str) -> None:
        self.events.put(("error", (kind, message)))

    def _drain_events(self) -> None:
        refresh = False
        while True:
            try:
                kind, payload = self.events.get_nowait()
            except queue.Empty:
                break

            if kind == "updated":
                refresh = True
                names = ", ".join(document.name for document in payload)
                self._append_log(f"Time updated: {names}")
            elif kind == "error":
                error_kind, message = payload
                self._append_log(f"{error_kind} error: {message}")
                if error_kind not in self._shown_errors:
                    self._shown_errors.add(error_kind)
                    messagebox.showerror("Error", message)
            elif kind == "saved":
                self._handle_saved(payload)
            elif kind == "cleared":
                self._handle_cleared(payload)

        if refresh:
            self._refresh_table()
        self.after(250, self._drain_events)

    def _handle_saved(self, future: Future) -> None:
        result: SaveResult = future.result()
        if result.ok:
            self._append_log(f"Saved {result.saved} documents.")
            messagebox.showinfo("Success", "Data saved successfully")
        else:
            self._append_log(f"Save incomplete; failed: {', '.join(result.failed)}")

    def _handle_cleared(self, future: Future) -> None:
        exc = future.exception()
        if exc is not None:
            self._append_log(f"Clearing data failed: {exc}")
            messagebox.showerror("Clear All Data", str(exc))
            return
        self._append_log("All data cleared.")
        self._refresh_table()

    def _refresh_table(self) -> None:
        documents = self.aggregator.snapshot()
        current = {document.name for document in documents}
        for item in self.table.get_children():
            if item not in current:
                self.table.delete(item)
        for document in documents:
            values = (document.name, f"{document.accrued_minutes:.0f}", document.project, document.notes)
            if self.table.exists(document.name):
                self.table.item(document.name, values=values)
            else:
                self.table.insert("", "end", iid=document.name, values=values)

    def _on_close(self) -> None:
        self.scheduler.shutdown()
        self.destroy()

    def _append_log(self, message: str) -> None:
        self.log_output.configure(state="normal")
        self.log_output.insert("end", f"[{_now_stamp()}] {message}\n")
        self.log_output.see("end")
        self.log_output.configure(state="disabled")


def _now_stamp() -> str:
    return datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S")


def _export_csv_cli(db: DocFocusDatabase, target: str) -> int:
    aggregator = TrackingAggregator()
    aggregator.seed(db.load_documents())
    path = write_csv(aggregator.export_rows(), Path(target))
    print(f"exported={len(aggregator)} file={path}")
    return 0


def _list_projects_cli(db: DocFocusDatabase) -> int:
    for project in db.list_projects():
        print(f"{project.id}\t{project.name}")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="docfocus")
    parser.add_argument("--version", action="store_true", help="Print app version and exit")
    parser.add_argument("--export-csv", metavar="PATH", help="Export stored documents to CSV and exit")
    parser.add_argument("--list-projects", action="store_true", help="Print stored projects and exit")
    parser.add_argument("--log-level", default="INFO", help="Logging level (default: INFO)")
    args = parser.parse_args(argv)
    if args.version:
        print(__version__)
        return 0

    try:
        ensure_directories()
        configure_logging(args.log_level, log_path())
        db = DocFocusDatabase(database_path())
    except (DatabaseUnavailableError, OSError) as exc:
        logger.critical("%s", exc)
        print(f"DocFocus cannot start: {exc}", file=sys.stderr)
        return 1
    logger.info("Using data directory %s", data_directory())

    if args.export_csv:
        return _export_csv_cli(db, args.export_csv)
    if args.list_projects:
        return _list_projects_cli(db)
    app = DocFocusApp(db)
    app.mainloop()
    return 0
