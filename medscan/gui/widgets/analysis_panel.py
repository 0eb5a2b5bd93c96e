"""Panel presenting the analysis progress and the resulting findings."""

from __future__ import annotations

from PySide6.QtCore import Qt, Signal
from PySide6.QtWidgets import (
    QLabel,
    QProgressBar,
    QTreeWidget,
    QTreeWidgetItem,
    QVBoxLayout,
    QWidget,
)

from ...report import DISCLAIMER
from ...schema import AnalysisResult

ANALYSIS_STEPS = (
    "Detecting scan type",
    "Analyzing regions",
    "Identifying patterns",
    "Generating report",
)


def _confidence_color(value: int) -> str:
    if value >= 70:
        return "#22c55e"
    if value >= 40:
        return "#eab308"
    return "#ef4444"


class AnalysisPanel(QWidget):
    region_selected = Signal(object)

    def __init__(self, parent: QWidget | None = None) -> None:
        super().__init__(parent)
        layout = QVBoxLayout(self)
        layout.setContentsMargins(0, 0, 0, 0)
        layout.setSpacing(8)

        self._title = QLabel()
        self._title.setObjectName("analysisTitle")
        self._summary = QLabel()
        self._summary.setWordWrap(True)
        self._summary.setTextFormat(Qt.TextFormat.RichText)

        self._progress = QProgressBar()
        self._progress.setRange(0, 0)
        self._progress.hide()

        self._findings = QTreeWidget()
        self._findings.setColumnCount(2)
        self._findings.setHeaderLabels(["Finding", "Detail"])
        self._findings.setAlternatingRowColors(True)
        self._findings.itemClicked.connect(self._on_item_clicked)

        self._recommendation = QLabel()
        self._recommendation.setWordWrap(True)

        self._disclaimer = QLabel(DISCLAIMER.replace("\n", " "))
        self._disclaimer.setWordWrap(True)
        self._disclaimer.setStyleSheet("color: #9ca3af; font-size: 11px;")

        layout.addWidget(self._title)
        layout.addWidget(self._progress)
        layout.addWidget(self._summary)
        layout.addWidget(self._findings, stretch=1)
        layout.addWidget(self._recommendation)
        layout.addWidget(self._disclaimer)

        self.show_empty()

    def show_empty(self) -> None:
        self._progress.hide()
        self._title.setText("<b>No Analysis Yet</b>")
        self._summary.setText("Upload a medical scan image to begin AI-powered analysis.")
        self._findings.clear()
        self._findings.hide()
        self._recommendation.clear()

    def show_busy(self) -> None:
        self._title.setText("<b>Analyzing Scan</b>")
        self._summary.setText("<br>".join(f"• {step}" for step in ANALYSIS_STEPS))
        self._progress.show()
        self._findings.clear()
        self._findings.hide()
        self._recommendation.clear()

    def show_result(self, result: AnalysisResult) -> None:
        self._progress.hide()
        self._title.setText(
            f"<b>Analysis Summary</b> &nbsp; {result.analysis_timestamp:%H:%M:%S}"
        )
        confidence = result.overall_confidence
        lines = [
            f"Scan Type: <b>{result.scan_type.value}</b>",
            f"Image Quality: <b>{result.image_quality.value}</b>",
            f"Status: <b>{result.status.value}</b>",
            f"Overall Confidence: <b style='color:{_confidence_color(confidence)}'>"
            f"{confidence}%</b>",
            f"Urgency: <b>{result.urgency_level.value.upper()}</b>",
        ]
        if result.is_poor_quality_failure:
            lines.append(
                "<span style='color:#ef4444'>Image quality too poor for a conclusive "
                "analysis.</span>"
            )
        self._summary.setText("<br>".join(lines))
        self._populate_findings(result)
        self._recommendation.setText(f"<b>Recommendation:</b> {result.recommendation}")

    def _populate_findings(self, result: AnalysisResult) -> None:
        self._findings.clear()
        groups: list[QTreeWidgetItem] = []

        if result.suspected_conditions:
            group = QTreeWidgetItem(["Suspected Conditions", ""])
            for condition in result.suspected_conditions:
                child = QTreeWidgetItem([condition.name, f"{condition.confidence}%"])
                child.setToolTip(0, condition.description)
                group.addChild(child)
            groups.append(group)

        if result.highlighted_regions:
            group = QTreeWidgetItem(["Highlighted Regions", ""])
            for region in result.highlighted_regions:
                child = QTreeWidgetItem([region.location, region.severity.value])
                child.setToolTip(0, region.description)
                child.setData(0, Qt.ItemDataRole.UserRole, region.id)
                group.addChild(child)
            groups.append(group)

        if result.differential_diagnoses:
            group = QTreeWidgetItem(["Differential Diagnoses", ""])
            for item in result.differential_diagnoses:
                child = QTreeWidgetItem([item.name, f"{item.confidence}%"])
                child.setToolTip(0, "\n".join(item.evidence))
                group.addChild(child)
            groups.append(group)

        self._findings.addTopLevelItems(groups)
        self._findings.expandAll()
        self._findings.resizeColumnToContents(0)
        self._findings.setVisible(bool(groups))

    def _on_item_clicked(self, item: QTreeWidgetItem, _column: int) -> None:
        region_id = item.data(0, Qt.ItemDataRole.UserRole)
        if region_id:
            self.region_selected.emit(region_id)
