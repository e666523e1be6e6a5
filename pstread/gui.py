#!/usr/bin/env python3
"""
PST Header Viewer
Pick a PST file and show its decoded header as JSON.
"""

import sys
import warnings
from pathlib import Path

from PyQt6.QtWidgets import (
    QApplication, QMainWindow, QWidget, QVBoxLayout, QHBoxLayout,
    QLabel, QPushButton, QFileDialog, QTextEdit, QLineEdit,
    QMessageBox, QProgressBar,
)
from PyQt6.QtCore import QThread, pyqtSignal
from PyQt6.QtGui import QFont, QAction

from .config import ReaderConfig, default_config_path
from .errors import HeaderWarning
from .ndb.header import HeaderDecoder
from .utils import header_to_json


class DecodeWorker(QThread):
    """Background worker decoding one header."""
    decoded = pyqtSignal(object)
    error = pyqtSignal(str)

    def __init__(self, pst_path, config):
        super().__init__()
        self.pst_path = pst_path
        self.config = config

    def run(self):
        try:
            header = HeaderDecoder(self.config).decode(self.pst_path)
            self.decoded.emit(header)
        except Exception as e:
            self.error.emit(f"{type(e).__name__}: {e}")


class MainWindow(QMainWindow):
    def __init__(self, config=None):
        super().__init__()
        self.setWindowTitle("PST Header Viewer")
        self.setMinimumSize(800, 700)

        self.config = config or ReaderConfig.load(default_config_path())
        self.worker = None

        self._setup_ui()
        self._setup_menu()

    def _setup_menu(self):
        menubar = self.menuBar()

        file_menu = menubar.addMenu("&File")

        open_action = QAction("&Open PST...", self)
        open_action.setShortcut("Ctrl+O")
        open_action.triggered.connect(self._on_browse)
        file_menu.addAction(open_action)

        file_menu.addSeparator()

        exit_action = QAction("E&xit", self)
        exit_action.setShortcut("Ctrl+Q")
        exit_action.triggered.connect(self.close)
        file_menu.addAction(exit_action)

    def _setup_ui(self):
        central = QWidget()
        self.setCentralWidget(central)
        layout = QVBoxLayout(central)

        top_layout = QHBoxLayout()
        top_layout.addWidget(QLabel("PST:"))

        self.file_path = QLineEdit()
        self.file_path.setReadOnly(True)
        self.file_path.setPlaceholderText("Select PST...")
        top_layout.addWidget(self.file_path)

        browse_btn = QPushButton("...")
        browse_btn.setFixedWidth(30)
        browse_btn.clicked.connect(self._on_browse)
        top_layout.addWidget(browse_btn)
        layout.addLayout(top_layout)

        self.header_view = QTextEdit()
        self.header_view.setReadOnly(True)
        self.header_view.setFont(QFont("Consolas", 10))
        layout.addWidget(self.header_view)

        self.status = self.statusBar()
        self.status.showMessage("Ready - Select a PST file")

        self.progress = QProgressBar()
        self.progress.setVisible(False)
        self.status.addPermanentWidget(self.progress)

    def _on_browse(self):
        path, _ = QFileDialog.getOpenFileName(
            self, "Open PST File", "",
            "Outlook Data File (*.pst);;All Files (*.*)"
        )
        if path:
            self.file_path.setText(path)
            self._load(path)

    def _load(self, path):
        self.progress.setVisible(True)
        self.progress.setRange(0, 0)
        self.status.showMessage(f"Reading {Path(path).name}...")

        self.worker = DecodeWorker(path, self.config)
        self.worker.decoded.connect(self._on_load_finished)
        self.worker.error.connect(self._on_load_error)
        self.worker.start()

    def _on_load_finished(self, header):
        self.progress.setVisible(False)
        self.header_view.setPlainText(header_to_json(header))
        msg = f"{header.file_type} {header.version.value} header"
        if header.diagnostics:
            msg += f" ({len(header.diagnostics)} warnings)"
        self.status.showMessage(msg)

    def _on_load_error(self, error):
        self.progress.setVisible(False)
        self.header_view.clear()
        self.status.showMessage("Failed to read header")
        QMessageBox.critical(self, "Load Error", f"Failed to read PST header:\n{error}")


def main():
    # Diagnostics are shown from header.diagnostics.
    warnings.filterwarnings("ignore", category=HeaderWarning)
    app = QApplication(sys.argv)
    app.setStyle("Fusion")
    window = MainWindow()
    window.show()
    if len(sys.argv) > 1:
        window.file_path.setText(sys.argv[1])
        window._load(sys.argv[1])
    sys.exit(app.exec())


if __name__ == '__main__':
    main()
