import asyncio
from decimal import Decimal

from PySide6.QtWidgets import (
    QDialog, QVBoxLayout, QTabWidget, QWidget, QFormLayout,
    QCheckBox, QSpinBox, QDoubleSpinBox, QDialogButtonBox, QMessageBox,
    QLineEdit, QTextEdit
)
from PySide6.QtCore import Signal
from pydantic import ValidationError

from meter.domain.models import InvoiceSettings, PomodoroConfig
from meter.services.tracking_service import TrackingService


class SettingsDialog(QDialog):
    """
    Pomodoro durations and the business details printed on invoices.
    """

    # Emitted after the Pomodoro configuration was saved
    pomodoro_changed = Signal(bool)

    def __init__(self, tracking: TrackingService, loop: asyncio.AbstractEventLoop, parent=None):
        super().__init__(parent)
        self.setWindowTitle("Meter Settings")
        self.resize(480, 460)

        self.tracking = tracking
        self.loop = loop
        self.invoice_settings = InvoiceSettings()

        self._setup_ui()
        self._load_data()

    def _setup_ui(self):
        layout = QVBoxLayout(self)

        self.tabs = QTabWidget()

        self.pomodoro_tab = QWidget()
        self._setup_pomodoro_tab()
        self.tabs.addTab(self.pomodoro_tab, "Pomodoro")

        self.invoice_tab = QWidget()
        self._setup_invoice_tab()
        self.tabs.addTab(self.invoice_tab, "Invoice")

        layout.addWidget(self.tabs)

        buttons = QDialogButtonBox(QDialogButtonBox.Save | QDialogButtonBox.Cancel)
        buttons.accepted.connect(self._save)
        buttons.rejected.connect(self.reject)
        layout.addWidget(buttons)

    def _setup_pomodoro_tab(self):
        form = QFormLayout(self.pomodoro_tab)

        self.enabled_check = QCheckBox("Enable Pomodoro mode")
        form.addRow(self.enabled_check)

        self.work_spin = self._minutes_spin()
        form.addRow("Work period:", self.work_spin)

        self.short_break_spin = self._minutes_spin()
        form.addRow("Short break:", self.short_break_spin)

        self.long_break_spin = self._minutes_spin()
        form.addRow("Long break:", self.long_break_spin)

        self.cycles_spin = QSpinBox()
        self.cycles_spin.setRange(1, 20)
        form.addRow("Cycles before long break:", self.cycles_spin)

    @staticmethod
    def _minutes_spin() -> QSpinBox:
        spin = QSpinBox()
        spin.setRange(1, 240)
        spin.setSuffix(" min")
        return spin

    def _setup_invoice_tab(self):
        form = QFormLayout(self.invoice_tab)

        self.business_edit = QLineEdit()
        form.addRow("Business name:", self.business_edit)
        self.street_edit = QLineEdit()
        form.addRow("Street:", self.street_edit)
        self.city_edit = QLineEdit()
        form.addRow("City:", self.city_edit)
        self.postal_edit = QLineEdit()
        form.addRow("Postal code:", self.postal_edit)
        self.country_edit = QLineEdit()
        form.addRow("Country:", self.country_edit)
        self.email_edit = QLineEdit()
        form.addRow("Email:", self.email_edit)
        self.phone_edit = QLineEdit()
        form.addRow("Phone:", self.phone_edit)
        self.tax_id_edit = QLineEdit()
        form.addRow("Tax ID:", self.tax_id_edit)
        self.terms_edit = QLineEdit()
        self.terms_edit.setPlaceholderText("Net 30")
        form.addRow("Payment terms:", self.terms_edit)

        self.tax_spin = QDoubleSpinBox()
        self.tax_spin.setRange(0, 100)
        self.tax_spin.setDecimals(2)
        self.tax_spin.setSuffix(" %")
        form.addRow("Default tax rate:", self.tax_spin)

        self.instructions_edit = QTextEdit()
        self.instructions_edit.setMaximumHeight(80)
        form.addRow("Payment instructions:", self.instructions_edit)

    def _load_data(self):
        repo = self.tracking.settings_repo
        config = self.loop.run_until_complete(repo.load_config())
        self.invoice_settings = self.loop.run_until_complete(repo.load_invoice_settings())

        self.enabled_check.setChecked(config.enabled)
        self.work_spin.setValue(max(config.work_minutes, 1))
        self.short_break_spin.setValue(max(config.short_break_minutes, 1))
        self.long_break_spin.setValue(max(config.long_break_minutes, 1))
        self.cycles_spin.setValue(max(config.cycles_before_long_break, 1))

        s = self.invoice_settings
        self.business_edit.setText(s.business_name)
        self.street_edit.setText(s.address_street)
        self.city_edit.setText(s.address_city)
        self.postal_edit.setText(s.address_postal_code)
        self.country_edit.setText(s.address_country)
        self.email_edit.setText(s.email)
        self.phone_edit.setText(s.phone)
        self.tax_id_edit.setText(s.tax_id)
        self.terms_edit.setText(s.default_payment_terms)
        self.tax_spin.setValue(float(s.default_tax_rate))
        self.instructions_edit.setPlainText(s.payment_instructions)

    def _save(self):
        try:
            config = PomodoroConfig(
                enabled=self.enabled_check.isChecked(),
                work_minutes=self.work_spin.value(),
                short_break_minutes=self.short_break_spin.value(),
                long_break_minutes=self.long_break_spin.value(),
                cycles_before_long_break=self.cycles_spin.value(),
            )
            invoice_settings = self.invoice_settings.model_copy(update={
                "business_name": self.business_edit.text().strip(),
                "address_street": self.street_edit.text().strip(),
                "address_city": self.city_edit.text().strip(),
                "address_postal_code": self.postal_edit.text().strip(),
                "address_country": self.country_edit.text().strip(),
                "email": self.email_edit.text().strip(),
                "phone": self.phone_edit.text().strip(),
                "tax_id": self.tax_id_edit.text().strip(),
                "default_payment_terms": self.terms_edit.text().strip() or "Net 30",
                "default_tax_rate": Decimal(str(round(self.tax_spin.value(), 2))),
                "payment_instructions": self.instructions_edit.toPlainText().strip(),
            })
        except ValidationError as e:
            QMessageBox.warning(self, "Invalid Settings", str(e))
            return

        self.loop.run_until_complete(self.tracking.update_pomodoro_config(config))
        self.loop.run_until_complete(
            self.tracking.settings_repo.save_invoice_settings(invoice_settings)
        )
        self.invoice_settings = invoice_settings
        self.pomodoro_changed.emit(config.enabled)
        self.accept()
