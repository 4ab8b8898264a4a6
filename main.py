# -*- coding: utf-8 -*-
"""
水印相机主程序
功能:编辑水印、模拟拍摄(导入照片 + 设备方向),预览并执行三重保存
"""

# 标准库导入
import sys
from pathlib import Path

# 第三方库导入
from loguru import logger
from PIL.ImageQt import ImageQt
from PySide6.QtWidgets import (
    QApplication, QWidget, QPushButton, QLabel, QListWidget, QListWidgetItem,
    QHBoxLayout, QVBoxLayout, QFileDialog, QGraphicsView, QGraphicsScene,
    QGraphicsPixmapItem, QSlider, QLineEdit, QComboBox, QMessageBox,
    QColorDialog, QCheckBox, QInputDialog, QGroupBox, QFrame, QScrollArea, QSplitter
)
from PySide6.QtGui import QPixmap, QImage, Qt, QColor
from PySide6.QtCore import Signal, QThread

# 本地模块导入
from watermark_camera.errors import DecodeError
from watermark_camera.image_io import decode_capture, generate_thumbnail, is_image_file, read_exif_orientation
from watermark_camera.log import init_logging
from watermark_camera.models import CaptureResult, WatermarkKind, WatermarkSpec
from watermark_camera.orientation import DeviceOrientation, ExifOrientation, correct_orientation
from watermark_camera.pipeline import PersistenceOutcome, PersistenceState
from watermark_camera.session import CaptureSession
from watermark_camera.settings import load_settings
from watermark_camera.template_manager import PresetManager, DEFAULT_PRESET

# 全局常量
APP_NAME = "WatermarkCamera - 水印相机"
PREVIEW_SIZE = 1200


def pil_to_qpixmap(img):
    """
    将PIL图像转换为Qt的QPixmap对象
    """
    if img.mode != "RGBA":
        img = img.convert("RGBA")
    qim = ImageQt(img)
    return QPixmap.fromImage(QImage(qim))


class SaveWorker(QThread):
    """
    保存工作线程

    在后台执行一次拍摄的完整保存流程,避免阻塞UI线程

    信号:
        progress: 每完成一步发送一条描述
        finished_signal: 发送 PersistenceOutcome
    """
    progress = Signal(str)
    finished_signal = Signal(object)

    def __init__(self, session, capture, device):
        super().__init__()
        self.session = session
        self.capture = capture
        self.device = device

    def run(self):
        def on_transition(result):
            status = "完成" if result.ok else f"失败: {result.error}"
            self.progress.emit(f"{result.stage.value} {status}")

        try:
            outcome = self.session.composite_and_persist(self.capture, self.device, on_transition)
        except Exception as e:
            logger.exception("保存线程异常")
            outcome = PersistenceOutcome(PersistenceState.FAILED, f"保存照片失败: {e}", "")
        # 无论成功与否都要通知界面，恢复拍摄按钮
        self.finished_signal.emit(outcome)


class MainWindow(QWidget):
    """
    水印相机主窗口

    左侧: 水印列表  中央: 预览与拍摄  右侧: 预设和水印参数
    """
    def __init__(self):
        super().__init__()
        self.setWindowTitle(APP_NAME)
        self.resize(1400, 800)

        self.settings = load_settings()
        self.session = CaptureSession(self.settings)
        self.preset_manager = PresetManager()

        # 当前模拟拍摄的数据
        self.capture_bytes = None
        self.capture_name = None
        self.text_color = QColor(255, 255, 255)
        self.worker = None

        self.setup_styles()
        self.setup_ui()
        self.setAcceptDrops(True)

        # 加载上一次预设
        specs = self.preset_manager.load_preset(self.preset_manager.last_used)
        if specs:
            self.session.watermarks.replace_all(specs)
        self.refresh_watermark_list()

    def setup_styles(self):
        """设置应用程序的全局样式"""
        self.setStyleSheet("""
            QWidget { font-family: "Microsoft YaHei UI", "Segoe UI", Arial; font-size: 9pt; }
            QGroupBox {
                font-weight: bold; border: 2px solid #d0d0d0; border-radius: 6px;
                margin-top: 12px; padding-top: 8px; background-color: #fafafa;
            }
            QGroupBox::title { subcontrol-origin: margin; padding: 4px 10px; color: #2c3e50; }
            QPushButton {
                background-color: #3498db; color: white; border: none;
                border-radius: 4px; padding: 8px 16px; font-weight: bold;
            }
            QPushButton:hover { background-color: #2980b9; }
            QPushButton:disabled { background-color: #bdc3c7; }
            QPushButton#dangerButton { background-color: #e74c3c; }
            QPushButton#successButton { background-color: #27ae60; }
            QPushButton#secondaryButton { background-color: #95a5a6; }
            QGraphicsView { border: 2px solid #bdc3c7; border-radius: 6px; background-color: #ecf0f1; }
        """)

    def setup_ui(self):
        """设置用户界面布局"""
        main_splitter = QSplitter(Qt.Horizontal)
        main_splitter.addWidget(self.create_left_panel())
        main_splitter.addWidget(self.create_center_panel())
        main_splitter.addWidget(self.create_right_panel())
        main_splitter.setStretchFactor(0, 2)
        main_splitter.setStretchFactor(1, 5)
        main_splitter.setStretchFactor(2, 3)

        main_layout = QVBoxLayout(self)
        main_layout.addWidget(main_splitter)
        main_layout.setContentsMargins(10, 10, 10, 10)

    # ---------- 面板 ----------

    def create_left_panel(self):
        """水印列表,勾选框控制启用/禁用"""
        panel = QWidget()
        layout = QVBoxLayout(panel)

        title = QLabel("🏷️ 水印列表")
        title.setStyleSheet("font-size: 12pt; font-weight: bold; color: #2c3e50;")
        layout.addWidget(title)

        self.list_widget = QListWidget()
        self.list_widget.currentRowChanged.connect(self.on_watermark_selected)
        self.list_widget.itemChanged.connect(self.on_watermark_toggled)
        layout.addWidget(self.list_widget)

        btn_layout = QHBoxLayout()
        btn_remove = QPushButton("🗑️ 删除")
        btn_remove.setObjectName("dangerButton")
        btn_remove.clicked.connect(self.on_remove_watermark)
        btn_layout.addWidget(btn_remove)

        btn_reset = QPushButton("↺ 默认")
        btn_reset.setObjectName("secondaryButton")
        btn_reset.clicked.connect(self.on_reset_watermarks)
        btn_layout.addWidget(btn_reset)
        layout.addLayout(btn_layout)

        self.count_label = QLabel()
        self.count_label.setStyleSheet("color: #7f8c8d;")
        layout.addWidget(self.count_label)
        return panel

    def create_center_panel(self):
        """预览区域和拍摄控制"""
        panel = QWidget()
        layout = QVBoxLayout(panel)

        title = QLabel("🖼️ 预览区域")
        title.setStyleSheet("font-size: 12pt; font-weight: bold; color: #2c3e50;")
        layout.addWidget(title)

        self.view = QGraphicsView()
        self.scene = QGraphicsScene()
        self.view.setScene(self.scene)
        layout.addWidget(self.view)

        hint = QLabel("💡 提示: 拖拽照片到窗口即可作为一次拍摄导入")
        hint.setStyleSheet("color: #7f8c8d; font-size: 8pt; padding: 5px;")
        hint.setAlignment(Qt.AlignCenter)
        layout.addWidget(hint)

        layout.addWidget(self.create_capture_group())
        return panel

    def create_capture_group(self):
        group = QGroupBox("📷 模拟拍摄")
        layout = QVBoxLayout()

        import_btn = QPushButton("➕ 导入照片")
        import_btn.setObjectName("secondaryButton")
        import_btn.clicked.connect(self.on_import)
        layout.addWidget(import_btn)

        row = QHBoxLayout()
        row.addWidget(QLabel("设备方向:"))
        self.device_combo = QComboBox()
        for orientation in DeviceOrientation:
            self.device_combo.addItem(orientation.name, orientation)
        self.device_combo.currentIndexChanged.connect(self.update_preview)
        row.addWidget(self.device_combo)

        row.addWidget(QLabel("EXIF:"))
        self.exif_combo = QComboBox()
        for tag in ExifOrientation:
            if tag is not ExifOrientation.UNDEFINED:
                self.exif_combo.addItem(tag.name, tag)
        self.exif_combo.currentIndexChanged.connect(self.update_preview)
        row.addWidget(self.exif_combo)
        layout.addLayout(row)

        self.capture_btn = QPushButton("✅ 拍摄并保存")
        self.capture_btn.setObjectName("successButton")
        self.capture_btn.setMinimumHeight(40)
        self.capture_btn.clicked.connect(self.on_capture)
        layout.addWidget(self.capture_btn)

        self.status_label = QLabel("未导入照片")
        self.status_label.setWordWrap(True)
        self.status_label.setStyleSheet("color: #7f8c8d; padding: 5px;")
        layout.addWidget(self.status_label)

        group.setLayout(layout)
        return group

    def create_right_panel(self):
        panel = QWidget()
        scroll = QScrollArea()
        scroll.setWidget(panel)
        scroll.setWidgetResizable(True)
        scroll.setFrameShape(QFrame.NoFrame)

        layout = QVBoxLayout(panel)
        layout.setSpacing(15)
        layout.addWidget(self.create_preset_group())
        layout.addWidget(self.create_editor_group())
        layout.addStretch()
        return scroll

    def create_preset_group(self):
        """水印预设管理"""
        group = QGroupBox("💾 水印预设")
        layout = QVBoxLayout()

        self.preset_combo = QComboBox()
        self.preset_combo.addItems(self.preset_manager.names())
        self.preset_combo.setCurrentText(self.preset_manager.last_used)
        layout.addWidget(self.preset_combo)

        btn_layout = QHBoxLayout()
        btn_load = QPushButton("📂 加载")
        btn_load.setObjectName("secondaryButton")
        btn_load.clicked.connect(self.load_selected_preset)
        btn_layout.addWidget(btn_load)

        btn_save = QPushButton("💾 保存")
        btn_save.clicked.connect(self.save_current_as_preset)
        btn_layout.addWidget(btn_save)

        btn_delete = QPushButton("🗑️ 删除")
        btn_delete.setObjectName("dangerButton")
        btn_delete.clicked.connect(self.delete_selected_preset)
        btn_layout.addWidget(btn_delete)

        layout.addLayout(btn_layout)
        group.setLayout(layout)
        return group

    def _slider(self, layout, lo, hi, value, fmt):
        text = QLabel(fmt(value))
        layout.addWidget(text)
        slider = QSlider(Qt.Horizontal)
        slider.setRange(lo, hi)
        slider.setValue(value)
        slider.valueChanged.connect(lambda v: text.setText(fmt(v)))
        layout.addWidget(slider)
        return slider

    def create_editor_group(self):
        """单个水印的参数"""
        group = QGroupBox("✏️ 水印参数")
        layout = QVBoxLayout()

        self.kind_combo = QComboBox()
        for kind in WatermarkKind:
            self.kind_combo.addItem(kind.display_name, kind)
        layout.addWidget(self.kind_combo)

        self.content_input = QLineEdit("Watermark Camera")
        self.content_input.setPlaceholderText("文字 / 时间格式 / 位置 / 图片路径")
        layout.addWidget(self.content_input)

        self.x_slider = self._slider(layout, 0, 100, 5, lambda v: f"水平位置: {v}%")
        self.y_slider = self._slider(layout, 0, 100, 95, lambda v: f"垂直位置: {v}%")
        self.scale_slider = self._slider(layout, 1, 50, 4, lambda v: f"大小: 图片宽度的 {v}%")
        self.opacity_slider = self._slider(layout, 0, 255, 200, lambda v: f"透明度: {v}")
        self.rotate_slider = self._slider(layout, 0, 359, 0, lambda v: f"旋转角度: {v}°")

        self.color_btn = QPushButton("选择颜色")
        self.color_btn.setObjectName("secondaryButton")
        self.color_btn.clicked.connect(self.choose_color)
        layout.addWidget(self.color_btn)

        self.shadow_cb = QCheckBox("阴影")
        self.shadow_cb.setChecked(True)
        layout.addWidget(self.shadow_cb)

        btn_layout = QHBoxLayout()
        btn_add = QPushButton("➕ 添加")
        btn_add.clicked.connect(self.on_add_watermark)
        btn_layout.addWidget(btn_add)
        btn_update = QPushButton("✔ 更新所选")
        btn_update.clicked.connect(self.on_update_watermark)
        btn_layout.addWidget(btn_update)
        layout.addLayout(btn_layout)

        group.setLayout(layout)
        return group

    # ---------- 水印编辑 ----------

    def collect_current_spec(self):
        """把编辑区的控件值组装为 WatermarkSpec"""
        c = self.text_color
        return WatermarkSpec(
            kind=self.kind_combo.currentData(),
            content=self.content_input.text(),
            position=(self.x_slider.value() / 100, self.y_slider.value() / 100),
            scale=self.scale_slider.value() / 100,
            opacity=self.opacity_slider.value(),
            rotation=float(self.rotate_slider.value()),
            color=(c.red(), c.green(), c.blue(), 255),
            has_shadow=self.shadow_cb.isChecked(),
        ).clamped()

    def apply_spec_to_editor(self, spec):
        self.kind_combo.setCurrentText(spec.kind.display_name)
        self.content_input.setText(spec.content)
        self.x_slider.setValue(round(spec.position[0] * 100))
        self.y_slider.setValue(round(spec.position[1] * 100))
        self.scale_slider.setValue(max(1, round(spec.scale * 100)))
        self.opacity_slider.setValue(spec.opacity)
        self.rotate_slider.setValue(int(spec.rotation) % 360)
        self.text_color = QColor(*spec.color[:3])
        self.color_btn.setText(self.text_color.name().upper())
        self.shadow_cb.setChecked(spec.has_shadow)

    def refresh_watermark_list(self):
        self.list_widget.blockSignals(True)
        self.list_widget.clear()
        for spec in self.session.watermarks.active():
            item = QListWidgetItem(f"{spec.kind.display_name}: {spec.content or '-'}")
            item.setFlags(item.flags() | Qt.ItemIsUserCheckable)
            item.setCheckState(Qt.Checked if spec.enabled else Qt.Unchecked)
            self.list_widget.addItem(item)
        self.list_widget.blockSignals(False)
        self.count_label.setText(f"已启用 {self.session.enabled_count()} / {len(self.session.watermarks)}")
        self.update_preview()

    def report_rejected(self):
        QMessageBox.warning(self, "水印无效", self.session.watermarks.last_error or "操作失败")

    def on_watermark_selected(self, row):
        if 0 <= row < len(self.session.watermarks):
            self.apply_spec_to_editor(self.session.watermarks[row])

    def on_watermark_toggled(self, item):
        row = self.list_widget.row(item)
        if not self.session.watermarks.set_enabled(row, item.checkState() == Qt.Checked):
            self.report_rejected()
        self.refresh_watermark_list()

    def on_add_watermark(self):
        if not self.session.watermarks.add(self.collect_current_spec()):
            self.report_rejected()
        self.refresh_watermark_list()

    def on_update_watermark(self):
        row = self.list_widget.currentRow()
        if not self.session.watermarks.update(row, self.collect_current_spec()):
            self.report_rejected()
        self.refresh_watermark_list()

    def on_remove_watermark(self):
        if not self.session.watermarks.remove(self.list_widget.currentRow()):
            self.report_rejected()
        self.refresh_watermark_list()

    def on_reset_watermarks(self):
        self.session.watermarks.reset_to_default()
        self.refresh_watermark_list()

    def choose_color(self):
        color = QColorDialog.getColor(self.text_color, self, "选择文字颜色")
        if color.isValid():
            self.text_color = color
            self.color_btn.setText(color.name().upper())

    # ---------- 预设 ----------

    def save_current_as_preset(self):
        name, ok = QInputDialog.getText(self, "保存预设", "请输入预设名称:")
        if not ok or not name:
            return
        self.preset_manager.save_preset(name, self.session.watermarks)
        self.preset_combo.clear()
        self.preset_combo.addItems(self.preset_manager.names())
        self.preset_combo.setCurrentText(name)

    def load_selected_preset(self):
        name = self.preset_combo.currentText()
        specs = self.preset_manager.load_preset(name)
        if specs is None or not self.session.watermarks.replace_all(specs):
            QMessageBox.warning(self, "错误", f"无法加载预设 '{name}'")
            return
        self.refresh_watermark_list()

    def delete_selected_preset(self):
        name = self.preset_combo.currentText()
        if name == DEFAULT_PRESET:
            QMessageBox.warning(self, "提示", "不能删除默认预设")
            return
        self.preset_manager.delete_preset(name)
        self.preset_combo.clear()
        self.preset_combo.addItems(self.preset_manager.names())
        self.preset_combo.setCurrentText(self.preset_manager.last_used)

    # ---------- 拍摄 ----------

    def dragEnterEvent(self, event):
        if event.mimeData().hasUrls():
            event.acceptProposedAction()

    def dropEvent(self, event):
        for url in event.mimeData().urls():
            path = url.toLocalFile()
            if is_image_file(path):
                self.load_capture(path)
                break

    def on_import(self):
        path, _ = QFileDialog.getOpenFileName(
            self, "选择照片", "", "Images (*.png *.jpg *.jpeg *.bmp *.tif *.tiff)"
        )
        if path:
            self.load_capture(path)

    def load_capture(self, path):
        """读取照片字节,EXIF 下拉框默认选中照片自带的方向"""
        data = Path(path).read_bytes()
        try:
            raw = decode_capture(data)
        except DecodeError as e:
            QMessageBox.warning(self, "错误", f"无法读取照片: {e.detail}")
            return
        tag = read_exif_orientation(raw)
        raw.close()
        self.capture_bytes = data
        self.capture_name = Path(path).name
        self.exif_combo.setCurrentText(tag.name)
        self.status_label.setText(f"已导入: {self.capture_name}")
        self.update_preview()

    def update_preview(self):
        """用当前方向设置修正后叠加水印显示"""
        self.scene.clear()
        if not self.capture_bytes:
            return
        raw = decode_capture(self.capture_bytes)
        thumb = generate_thumbnail(raw, max_size=PREVIEW_SIZE)
        raw.close()
        corrected, _ = correct_orientation(thumb, self.exif_combo.currentData(), self.device_combo.currentData())
        preview = self.session.apply_watermarks(corrected)
        self.scene.addItem(QGraphicsPixmapItem(pil_to_qpixmap(preview)))
        self.view.fitInView(self.scene.itemsBoundingRect(), Qt.KeepAspectRatio)

    def on_capture(self):
        if not self.capture_bytes:
            QMessageBox.warning(self, "提示", "请先导入一张照片")
            return
        capture = CaptureResult(self.capture_bytes, exif_orientation=self.exif_combo.currentData())
        self.capture_btn.setEnabled(False)
        self.worker = SaveWorker(self.session, capture, self.device_combo.currentData())
        self.worker.progress.connect(self.on_save_progress)
        self.worker.finished_signal.connect(self.on_save_finished)
        self.worker.start()

    def on_save_progress(self, message):
        self.status_label.setText(message)

    def on_save_finished(self, outcome):
        self.capture_btn.setEnabled(True)
        paths = "\n".join(str(p) for p in outcome.artifact_paths.values())
        self.status_label.setText(outcome.message)
        QMessageBox.information(self, outcome.state.value, f"{outcome.message}\n\n{paths}")

    def closeEvent(self, event):
        self.session.close()
        super().closeEvent(event)


if __name__ == "__main__":
    settings = load_settings()
    init_logging(settings.log_dir)
    logger.info("启动 {}", APP_NAME)
    app = QApplication(sys.argv)
    window = MainWindow()
    window.show()
    sys.exit(app.exec())
