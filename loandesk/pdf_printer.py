"""HTML to PDF printing through QtWebEngine.

Shared by the document generator and the reports. The caller provides the
QWebEngineView (it must be created on the GUI thread after QApplication).
"""
from loandesk.config import PDF_MARGIN_MM
from loandesk.logger import get_logger

logger = get_logger(__name__)

# Upper bound for waiting on setHtml() before printing anyway
LOAD_TIMEOUT_MS = 5000
PRINT_TIMEOUT_MS = 30000


def _disconnect(signal):
    try:
        signal.disconnect()
    except (TypeError, RuntimeError):
        pass


def print_html_to_pdf(web_view, html, output_path, landscape=False):
    """Render ``html`` in ``web_view`` and print it to ``output_path``.

    Blocks on a local QEventLoop until printing finishes.

    Returns:
        True if Qt reports the PDF was written.
    """
    from PyQt6.QtCore import QEventLoop, QMarginsF, QTimer
    from PyQt6.QtGui import QPageLayout, QPageSize

    loop = QEventLoop()

    _disconnect(web_view.loadFinished)
    web_view.loadFinished.connect(loop.quit)
    web_view.setHtml(html)
    QTimer.singleShot(LOAD_TIMEOUT_MS, loop.quit)
    loop.exec()

    orientation = QPageLayout.Orientation.Landscape if landscape else QPageLayout.Orientation.Portrait
    page_layout = QPageLayout(
        QPageSize(QPageSize.PageSizeId.A4),
        orientation,
        QMarginsF(PDF_MARGIN_MM, PDF_MARGIN_MM, PDF_MARGIN_MM, PDF_MARGIN_MM)
    )

    outcome = {'success': False}

    def on_pdf_done(filepath_out, success):
        outcome['success'] = success
        loop.quit()

    page = web_view.page()
    _disconnect(page.pdfPrintingFinished)
    page.pdfPrintingFinished.connect(on_pdf_done)
    page.printToPdf(output_path, page_layout)
    QTimer.singleShot(PRINT_TIMEOUT_MS, loop.quit)
    loop.exec()

    if not outcome['success']:
        logger.warning("Qt reported a failed PDF print for %s", output_path)
    return outcome['success']
