"""Tkinter 图形界面实现。"""

from __future__ import annotations

import logging
import queue
import tkinter as tk
from pathlib import Path
from tkinter import filedialog, messagebox, ttk
from typing import Dict, Optional

from jpeg_compressor.core.config import PROFILES, SessionConfig
from jpeg_compressor.core.models import STATUS_DONE, Item, StoreChange
from jpeg_compressor.core.uploads import upload_from_path
from jpeg_compressor.processing.runner import BackgroundSession
from jpeg_compressor.utils.formatting import format_megabytes, format_ratio
from jpeg_compressor.utils.logging import setup_logging

STATUS_LABELS = {
    "pending": "等待中",
    "processing": "压缩中",
    "done": "完成",
    "failed": "失败",
}


class TextWidgetHandler(logging.Handler):
    """Logging handler that writes records into a Tk Text widget."""

    def __init__(self, widget: tk.Text) -> None:
        super().__init__()
        self._widget = widget

    def emit(self, record: logging.LogRecord) -> None:  # noqa: D401 - standard logging handler signature
        message = self.format(record)
        # Schedule UI update on main thread
        self._widget.after(0, self._write, message)

    def _write(self, message: str) -> None:
        if not self._widget.winfo_exists():
            return
        self._widget.configure(state=tk.NORMAL)
        self._widget.insert(tk.END, message + "\n")
        self._widget.configure(state=tk.DISABLED)
        self._widget.see(tk.END)


class CompressorApp(tk.Tk):
    """Tkinter 主窗口。"""

    def __init__(self, config: Optional[SessionConfig] = None) -> None:
        super().__init__()
        self.title("JPEG Compressor")
        self.geometry("900x560")
        setup_logging()

        self.session = BackgroundSession(config)
        self._event_queue: "queue.Queue[StoreChange]" = queue.Queue()
        self._unsubscribe = self.session.subscribe(self._event_queue.put)
        self._profile_labels: Dict[str, str] = {p.label: p.name for p in PROFILES.values()}
        self.default_dir = Path.home()

        self._build_ui()

        self._log_handler = TextWidgetHandler(self.log_text)
        self._log_handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s: %(message)s"))
        logging.getLogger("jpeg_compressor").addHandler(self._log_handler)

        self.protocol("WM_DELETE_WINDOW", self._handle_close)
        self.after(100, self._poll_queue)

    # ---------------------- UI 构建 ---------------------- #

    def _build_ui(self) -> None:
        container = ttk.Frame(self, padding=12)
        container.pack(fill=tk.BOTH, expand=True)

        toolbar = ttk.Frame(container)
        toolbar.pack(fill=tk.X)
        ttk.Button(toolbar, text="添加图片", command=self._add_files).pack(side=tk.LEFT)
        ttk.Button(toolbar, text="移除选中", command=self._remove_selected).pack(side=tk.LEFT, padx=(8, 0))
        ttk.Button(toolbar, text="重试选中", command=self._retry_selected).pack(side=tk.LEFT, padx=(8, 0))
        ttk.Button(toolbar, text="保存选中", command=self._save_selected).pack(side=tk.LEFT, padx=(8, 0))
        ttk.Button(toolbar, text="清空", command=self._clear_all).pack(side=tk.LEFT, padx=(8, 0))

        current = self.session.profile
        self.profile_var = tk.StringVar(value=current.label)
        profile_box = ttk.Combobox(
            toolbar,
            textvariable=self.profile_var,
            values=list(self._profile_labels),
            state="readonly",
            width=10,
        )
        profile_box.pack(side=tk.RIGHT)
        profile_box.bind("<<ComboboxSelected>>", self._on_profile_selected)
        ttk.Label(toolbar, text="压缩档位:").pack(side=tk.RIGHT, padx=(0, 4))

        columns = ("status", "progress", "original", "compressed", "saved")
        self.tree = ttk.Treeview(container, columns=columns, height=12)
        self.tree.heading("#0", text="文件名")
        self.tree.heading("status", text="状态")
        self.tree.heading("progress", text="进度")
        self.tree.heading("original", text="原始大小")
        self.tree.heading("compressed", text="压缩后")
        self.tree.heading("saved", text="节省")
        self.tree.column("#0", width=280)
        for column in columns:
            self.tree.column(column, width=100, anchor=tk.CENTER)
        self.tree.pack(fill=tk.BOTH, expand=True, pady=(8, 8))

        log_frame = ttk.LabelFrame(container, text="日志", padding=6)
        log_frame.pack(fill=tk.BOTH, expand=False)
        self.log_text = tk.Text(log_frame, height=8, state=tk.DISABLED)
        self.log_text.pack(fill=tk.BOTH, expand=True)

    # ---------------------- 事件处理 ---------------------- #

    def _add_files(self) -> None:
        filenames = filedialog.askopenfilenames(
            title="选择 JPEG 图片",
            filetypes=[("JPEG 图片", "*.jpg *.jpeg"), ("所有文件", "*.*")],
            initialdir=str(self.default_dir),
        )
        if not filenames:
            return
        paths = [Path(name) for name in filenames]
        try:
            uploads = [upload_from_path(path) for path in paths]
        except OSError as exc:
            messagebox.showerror("读取失败", str(exc))
            return
        self.default_dir = paths[0].parent

        result = self.session.submit(uploads)
        if result.rejected_count:
            messagebox.showwarning("提示", f"已忽略 {result.rejected_count} 个非 JPEG 文件，请上传 JPEG 图片。")

    def _selected_ids(self) -> list[str]:
        return list(self.tree.selection())

    def _remove_selected(self) -> None:
        for item_id in self._selected_ids():
            self.session.remove(item_id)

    def _retry_selected(self) -> None:
        for item_id in self._selected_ids():
            self.session.retry(item_id)

    def _clear_all(self) -> None:
        self.session.clear()

    def _save_selected(self) -> None:
        snapshot = self.session.snapshot()
        for item_id in self._selected_ids():
            item = snapshot.get(item_id)
            if item is None or item.status != STATUS_DONE or item.artifact is None:
                continue
            filename = filedialog.asksaveasfilename(
                title="保存压缩结果",
                initialdir=str(self.default_dir),
                initialfile=item.download_name,
                defaultextension=".jpg",
            )
            if not filename:
                continue
            try:
                item.artifact.save(Path(filename))
            except Exception as exc:  # noqa: BLE001
                messagebox.showerror("保存失败", str(exc))

    def _on_profile_selected(self, _event: object = None) -> None:
        name = self._profile_labels.get(self.profile_var.get())
        if name:
            self.session.change_profile(name)

    def _poll_queue(self) -> None:
        latest: Optional[StoreChange] = None
        try:
            while True:
                latest = self._event_queue.get_nowait()
        except queue.Empty:
            pass
        finally:
            if latest is not None:
                self._render()
            self.after(100, self._poll_queue)

    def _render(self) -> None:
        items = self.session.store.display_snapshot()
        known = set(self.tree.get_children())
        wanted = [item.id for item in items]
        for stale in known.difference(wanted):
            self.tree.delete(stale)
        for index, item in enumerate(items):
            values = self._row_values(item)
            if item.id in known:
                self.tree.item(item.id, values=values)
                self.tree.move(item.id, "", index)
            else:
                self.tree.insert("", index, iid=item.id, text=item.name, values=values)

    @staticmethod
    def _row_values(item: Item) -> tuple[str, ...]:
        return (
            STATUS_LABELS.get(item.status, item.status),
            f"{item.progress}%",
            format_megabytes(item.original_size),
            format_megabytes(item.compressed_size),
            format_ratio(item.saved_ratio),
        )

    def _handle_close(self) -> None:
        self._unsubscribe()
        logging.getLogger("jpeg_compressor").removeHandler(self._log_handler)
        self.session.close()
        self.destroy()


def run_gui() -> None:
    """启动 GUI 应用。"""

    app = CompressorApp()
    app.mainloop()


if __name__ == "__main__":
    run_gui()
