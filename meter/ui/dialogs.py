"""
Dialog for starting a timer from the tray.
"""

from typing import List, Optional
from PySide6.QtWidgets import (
    QDialog, QVBoxLayout, QLabel, QComboBox, QFormLayout,
    QDialogButtonBox, QLineEdit
)


class StartTimerDialog(QDialog):
    """
    Asks for a project (free text or a recent one) and a description.
    """

    def __init__(self, projects: List[str], default_description: str = "",
                 last_project: Optional[str] = None, parent=None):
        super().__init__(parent)
        self.setWindowTitle("Start Timer")
        self.setModal(True)

        layout = QVBoxLayout()

        form = QFormLayout()
        self.project_combo = QComboBox()
        self.project_combo.setEditable(True)
        self.project_combo.addItems(projects)
        if last_project:
            self.project_combo.setCurrentText(last_project)
        form.addRow("Project:", self.project_combo)

        self.description_edit = QLineEdit(default_description)
        form.addRow("Description:", self.description_edit)
        layout.addLayout(form)

        self.error_label = QLabel()
        self.error_label.setStyleSheet("color: red;")
        self.error_label.hide()
        layout.addWidget(self.error_label)

        buttons = QDialogButtonBox(QDialogButtonBox.Ok | QDialogButtonBox.Cancel)
        buttons.button(QDialogButtonBox.Ok).setText("Start")
        buttons.accepted.connect(self._on_accept)
        buttons.rejected.connect(self.reject)
        layout.addWidget(buttons)

        self.setLayout(layout)
        self.setMinimumWidth(360)

    @property
    def project(self) -> str:
        return self.project_combo.currentText().strip()

    @property
    def description(self) -> str:
        return self.description_edit.text().strip()

    def _on_accept(self):
        if not self.project:
            self.error_label.setText("Please enter a project name.")
            self.error_label.show()
            return
        self.accept()
