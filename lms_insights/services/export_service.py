"""
导出服务
提供PDF、Excel、CSV和JSON格式的报表导出功能
"""
import base64
import csv
import io
import json
import os
import re
from datetime import datetime
from typing import List, Dict, Any, Optional
from io import BytesIO

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.units import inch
from reportlab.platypus import SimpleDocTemplate, Table, TableStyle, Paragraph, Spacer, PageBreak, Image
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.ttfonts import TTFont
from reportlab.lib.enums import TA_CENTER

from openpyxl import Workbook
from openpyxl.styles import Font, Alignment, PatternFill, Border, Side
from openpyxl.utils import get_column_letter

from .chart_service import build_chart_data
from .dto import DataMetadata
from .errors import DatasetTooLargeError, InsightsError
from ..utils.logger import get_logger

logger = get_logger(__name__)

PDF_MAX_ROWS = 5000
MAX_CHART_IMAGE_LENGTH = 2_000_000
MAX_FRONTEND_DATA_SIZE = 10 * 1024 * 1024  # 10MB
CHART_IMAGE_PREFIX = re.compile(r"^data:image/(png|jpeg|jpg);base64,")

MEDIA_TYPES = {
    "pdf": "application/pdf",
    "excel": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "csv": "text/csv",
    "json": "application/json",
}
FILE_EXTENSIONS = {"pdf": "pdf", "excel": "xlsx", "csv": "csv", "json": "json"}


def format_header(header: str) -> str:
    """snake_case 列名转换为标题格式：course_name -> Course Name"""
    return str(header).lower().replace('_', ' ').title()


def decode_chart_image(chart_image: Optional[str]) -> Optional[bytes]:
    """
    校验并解码前端截取的图表图片

    只接受不超过2MB的 png/jpeg data URI，其余情况返回None
    """
    if not chart_image:
        return None
    if not CHART_IMAGE_PREFIX.match(chart_image):
        logger.warning("图表图片格式无效，已忽略")
        return None
    if len(chart_image) > MAX_CHART_IMAGE_LENGTH:
        logger.warning(f"图表图片过大，已忽略: length={len(chart_image)}")
        return None
    try:
        return base64.b64decode(chart_image.split(',', 1)[1])
    except ValueError as e:
        logger.warning(f"解码图表图片失败: {e}")
        return None


def build_filename(report_name: str, view: str, extension: str, now: Optional[datetime] = None) -> str:
    """下载文件名：{报表名}_{table|chart}_{YYYY-MM-DD}.{扩展名}"""
    clean = re.sub(r"[^a-z0-9]+", "_", (report_name or "report").lower()).strip("_") or "report"
    view = "chart" if view == "chart" else "table"
    return f"{clean}_{view}_{(now or datetime.now()).strftime('%Y-%m-%d')}.{extension}"


class ExportFile:
    """导出结果"""
    def __init__(self, content: bytes, media_type: str, filename: str):
        self.content = content
        self.media_type = media_type
        self.filename = filename


class ReportData:
    """报表数据封装类"""
    def __init__(
        self,
        title: str,
        headers: List[str],
        data: List[Dict[str, Any]],
        metadata: DataMetadata,
        category: str = "",
        chart_type: str = "bar",
        parameters: Optional[Dict[str, Any]] = None,
        chart_image: Optional[bytes] = None,
        view: str = "table",
    ):
        self.title = title
        self.headers = headers
        self.data = data
        self.metadata = metadata
        self.category = category
        self.chart_type = chart_type
        self.parameters = parameters or {}
        self.chart_image = chart_image
        self.view = view
        self.generated_at = datetime.now()

    def table_rows(self) -> List[List[Any]]:
        """格式化表头 + 数据行；没有数据时为单元格 "No data found" """
        if not self.data:
            return [["No data found"]]
        rows = [[format_header(h) for h in self.headers]]
        for row in self.data:
            rows.append([row.get(h, '') for h in self.headers])
        return rows

    def chart_rows(self) -> List[List[Any]]:
        """图表数据（Label, Value）表，没有数据时为空列表"""
        chart = build_chart_data(self.data, self.headers, self.chart_type)
        if not chart:
            return []
        values = chart["datasets"][0]["data"]
        return [[label, values[i] if i < len(values) else ''] for i, label in enumerate(chart["labels"])]


class ExportService:
    """导出服务类"""

    def __init__(self):
        """初始化导出服务"""
        self.pdf_font = self._register_pdf_font()

    @staticmethod
    def _register_pdf_font() -> str:
        """注册 PDF_FONT_PATH 指定的TrueType字体，未配置或失败时使用Helvetica"""
        font_path = os.getenv("PDF_FONT_PATH")
        if not font_path:
            return 'Helvetica'
        try:
            pdfmetrics.registerFont(TTFont('ReportFont', font_path))
            return 'ReportFont'
        except Exception as e:
            logger.warning(f"字体加载失败: {e}，使用默认字体")
            return 'Helvetica'

    async def export(self, export_format: str, report_data: ReportData) -> ExportFile:
        """
        按格式导出

        Args:
            export_format: pdf / excel / csv / json
            report_data: 报表数据对象

        Returns:
            ExportFile

        Raises:
            DatasetTooLargeError: PDF超过行数限制
            InsightsError: 不支持的格式
        """
        export_format = (export_format or "").lower()
        writers = {
            "pdf": self.export_to_pdf,
            "excel": self.export_to_excel,
            "csv": self.export_to_csv,
            "json": self.export_to_json,
        }
        writer = writers.get(export_format)
        if writer is None:
            raise InsightsError("Unsupported export format")

        if export_format == "pdf" and len(report_data.data) > PDF_MAX_ROWS:
            raise DatasetTooLargeError(len(report_data.data), PDF_MAX_ROWS, "pdf")

        content = await writer(report_data)
        return ExportFile(
            content=content,
            media_type=MEDIA_TYPES[export_format],
            filename=build_filename(report_data.title, report_data.view, FILE_EXTENSIONS[export_format]),
        )

    async def export_to_pdf(self, report_data: ReportData, include_chart: bool = True) -> bytes:
        """
        生成PDF文件

        包含：
        - 标题、分类和生成时间
        - 报表参数
        - 数据表格（表头格式化，跨页重复表头）
        - 图表图片（如果提供，单独一页）

        Args:
            report_data: 报表数据对象
            include_chart: 是否包含图表

        Returns:
            PDF文件的字节数据
        """
        try:
            logger.info(
                f"开始生成PDF: title='{report_data.title}', "
                f"data_rows={len(report_data.data)}, has_chart={report_data.chart_image is not None}"
            )
            font = self.pdf_font
            wide = len(report_data.headers) > 6

            buffer = BytesIO()
            doc = SimpleDocTemplate(
                buffer,
                pagesize=landscape(A4) if wide else A4,
                rightMargin=0.6*inch,
                leftMargin=0.6*inch,
                topMargin=0.8*inch,
                bottomMargin=0.6*inch,
                title=report_data.title,
            )

            story = []
            styles = getSampleStyleSheet()

            title_style = ParagraphStyle(
                'ReportTitle',
                parent=styles['Heading1'],
                fontName=font,
                fontSize=18,
                textColor=colors.HexColor('#1f2937'),
                spaceAfter=8,
                alignment=TA_CENTER
            )
            muted_style = ParagraphStyle(
                'Muted',
                parent=styles['Normal'],
                fontName=font,
                fontSize=9,
                textColor=colors.HexColor('#6b7280'),
                alignment=TA_CENTER
            )
            section_style = ParagraphStyle(
                'Section',
                parent=styles['Heading2'],
                fontName=font,
                fontSize=13,
                textColor=colors.HexColor('#374151'),
                spaceAfter=6
            )
            cell_style = ParagraphStyle('Cell', parent=styles['Normal'], fontName=font, fontSize=7, leading=9)

            story.append(Paragraph(report_data.title, title_style))
            subtitle = f"Generated: {report_data.generated_at.strftime('%Y-%m-%d %H:%M:%S')}"
            if report_data.category:
                subtitle = f"{report_data.category} | {subtitle}"
            story.append(Paragraph(subtitle, muted_style))
            story.append(Spacer(1, 0.2*inch))

            if report_data.parameters:
                story.append(Paragraph("Parameters", section_style))
                for name, value in report_data.parameters.items():
                    story.append(Paragraph(f"{format_header(name)}: {value}", styles['Normal']))
                story.append(Spacer(1, 0.2*inch))

            story.append(Paragraph("Data", section_style))
            table_rows = report_data.table_rows()
            num_cols = len(table_rows[0])
            col_width = doc.width / num_cols
            # 单元格用Paragraph包装以自动换行
            wrapped = [table_rows[0]] + [
                [Paragraph(str(v) if v is not None else '', cell_style) for v in row]
                for row in table_rows[1:]
            ]
            table = Table(wrapped, colWidths=[col_width] * num_cols, repeatRows=1)
            table.setStyle(TableStyle([
                ('BACKGROUND', (0, 0), (-1, 0), colors.HexColor('#2563eb')),
                ('TEXTCOLOR', (0, 0), (-1, 0), colors.whitesmoke),
                ('FONTNAME', (0, 0), (-1, 0), font),
                ('FONTSIZE', (0, 0), (-1, 0), 8),
                ('ALIGN', (0, 0), (-1, 0), 'CENTER'),
                ('VALIGN', (0, 0), (-1, -1), 'TOP'),
                ('TOPPADDING', (0, 0), (-1, -1), 4),
                ('BOTTOMPADDING', (0, 0), (-1, -1), 4),
                ('GRID', (0, 0), (-1, -1), 0.5, colors.HexColor('#e5e7eb')),
                ('ROWBACKGROUNDS', (0, 1), (-1, -1), [colors.white, colors.HexColor('#f9fafb')]),
            ]))
            story.append(table)
            story.append(Spacer(1, 0.1*inch))
            story.append(Paragraph(f"Total Rows: {report_data.metadata.row_count}", muted_style))

            if include_chart and report_data.chart_image:
                try:
                    img = Image(BytesIO(report_data.chart_image))
                    scale = min(doc.width / img.imageWidth, (doc.height * 0.8) / img.imageHeight, 1.0)
                    img.drawWidth = img.imageWidth * scale
                    img.drawHeight = img.imageHeight * scale
                    story.append(PageBreak())
                    story.append(Paragraph("Chart", section_style))
                    story.append(img)
                except Exception as e:
                    logger.warning(f"添加图表到PDF失败: {e}")

            doc.build(story)
            pdf_bytes = buffer.getvalue()
            buffer.close()

            logger.info(f"PDF生成完成: size={len(pdf_bytes)} bytes")
            return pdf_bytes

        except Exception as e:
            logger.error(
                "PDF生成失败",
                extra={"title": report_data.title, "data_rows": len(report_data.data), "error": str(e)},
                exc_info=True
            )
            raise InsightsError(f"PDF generation failed: {str(e)}")

    async def export_to_excel(self, report_data: ReportData, include_chart_data: bool = True) -> bytes:
        """
        生成Excel文件

        包含：
        - Data 工作表（格式化表头和原始数据）
        - Chart Data 工作表（Label/Value）
        - Summary 工作表（报表信息和参数）
        - Metadata 工作表（列类型）

        Returns:
            Excel文件的字节数据
        """
        try:
            logger.info(f"开始生成Excel: title='{report_data.title}', data_rows={len(report_data.data)}")

            wb = Workbook()
            wb.remove(wb.active)

            header_font = Font(name='Arial', size=11, bold=True, color='FFFFFF')
            header_fill = PatternFill(start_color='2563EB', end_color='2563EB', fill_type='solid')
            header_alignment = Alignment(horizontal='center', vertical='center')
            data_font = Font(name='Arial', size=10)
            stripe_fill = PatternFill(start_color='F9FAFB', end_color='F9FAFB', fill_type='solid')
            border = Border(
                left=Side(style='thin', color='E5E7EB'),
                right=Side(style='thin', color='E5E7EB'),
                top=Side(style='thin', color='E5E7EB'),
                bottom=Side(style='thin', color='E5E7EB')
            )

            def write_sheet(title: str, rows: List[List[Any]]):
                ws = wb.create_sheet(title)
                for row_idx, row in enumerate(rows, 1):
                    for col_idx, value in enumerate(row, 1):
                        cell = ws.cell(row=row_idx, column=col_idx, value=value)
                        cell.border = border
                        if row_idx == 1:
                            cell.font = header_font
                            cell.fill = header_fill
                            cell.alignment = header_alignment
                        else:
                            cell.font = data_font
                            if row_idx % 2 == 0:
                                cell.fill = stripe_fill
                # 列宽按前100行估算，最大50
                for col_idx in range(1, (len(rows[0]) if rows else 0) + 1):
                    width = max(len(str(r[col_idx - 1])) for r in rows[:100] if len(r) >= col_idx)
                    ws.column_dimensions[get_column_letter(col_idx)].width = min(width + 2, 50)
                ws.freeze_panes = 'A2'
                return ws

            write_sheet("Data", report_data.table_rows())

            chart_rows = report_data.chart_rows() if include_chart_data else []
            if chart_rows:
                write_sheet("Chart Data", [["Label", "Value"]] + chart_rows)

            ws_summary = wb.create_sheet("Summary")
            ws_summary.cell(row=1, column=1, value=report_data.title).font = Font(name='Arial', size=14, bold=True)
            info = [
                ("Category", report_data.category),
                ("Generated At", report_data.generated_at.strftime('%Y-%m-%d %H:%M:%S')),
                ("Total Rows", report_data.metadata.row_count),
                ("Total Columns", len(report_data.metadata.columns)),
            ] + [(format_header(k), str(v)) for k, v in report_data.parameters.items()]
            for row_idx, (label, value) in enumerate(info, 3):
                ws_summary.cell(row=row_idx, column=1, value=label).font = Font(name='Arial', size=10, bold=True)
                ws_summary.cell(row=row_idx, column=2, value=value).font = data_font
            ws_summary.column_dimensions['A'].width = 20
            ws_summary.column_dimensions['B'].width = 60

            write_sheet("Metadata", [["Column", "Type"]] + [
                [column, report_data.metadata.column_types.get(column, '')]
                for column in report_data.metadata.columns
            ])

            buffer = BytesIO()
            wb.save(buffer)
            excel_bytes = buffer.getvalue()
            buffer.close()

            logger.info(f"Excel生成完成: size={len(excel_bytes)} bytes, sheets={len(wb.sheetnames)}")
            return excel_bytes

        except Exception as e:
            logger.error(
                "Excel生成失败",
                extra={"title": report_data.title, "data_rows": len(report_data.data), "error": str(e)},
                exc_info=True
            )
            raise InsightsError(f"Excel generation failed: {str(e)}")

    async def export_to_csv(self, report_data: ReportData) -> bytes:
        """生成CSV文件（只包含表格数据）"""
        buffer = io.StringIO()
        writer = csv.writer(buffer)
        for row in report_data.table_rows():
            writer.writerow(['' if v is None else v for v in row])
        return buffer.getvalue().encode('utf-8')

    async def export_to_json(self, report_data: ReportData) -> bytes:
        """生成JSON文件"""
        chart_rows = report_data.chart_rows()
        payload = {
            "report_name": report_data.title,
            "report_category": report_data.category,
            "parameters": report_data.parameters,
            "headers": report_data.headers,
            "results": report_data.data,
            "chart_data": [{"label": label, "value": value} for label, value in chart_rows] or None,
            "exported_at": report_data.generated_at.strftime('%Y-%m-%d %H:%M:%S'),
        }
        return json.dumps(payload, indent=2, ensure_ascii=False, default=str).encode('utf-8')


# 全局导出服务实例
_export_service = None


def get_export_service() -> ExportService:
    """
    获取全局导出服务实例

    Returns:
        ExportService实例
    """
    global _export_service

    if _export_service is None:
        _export_service = ExportService()

    return _export_service
