"""
Report generation module for LoanDesk.
Handles the monthly performance and per-client profitability reports and
their export to Excel, CSV and PDF.
"""
import pandas as pd
from datetime import date, datetime
from dateutil.relativedelta import relativedelta

from loandesk.config import REPORT_MONTHS, STATUS_COMPLETED
from loandesk.formatters import format_currency
from loandesk.logger import get_logger
from loandesk.pdf_printer import print_html_to_pdf
from loandesk.services.reconciler import dedupe_payments_df

logger = get_logger(__name__)

MONTHLY_COLUMNS = ["Month", "Loaned", "Received", "New Loans", "Completed Loans", "Profit"]
CLIENT_COLUMNS = ["Client", "Total Loans", "Total Amount", "Total Paid", "Profit", "Status"]

REPORT_TITLES = {
    'monthly': "Monthly Performance Report",
    'clients': "Client Profitability Report",
}


class ReportGenerator:
    def __init__(self, db_manager, printer_view_getter=None):
        self.db = db_manager
        self.printer_view_getter = printer_view_getter

    @staticmethod
    def _month_starts(months, today):
        """First day of each of the last ``months`` months, oldest first."""
        current = today.replace(day=1)
        return [current - relativedelta(months=i) for i in range(months - 1, -1, -1)]

    def monthly_report(self, months=REPORT_MONTHS, today=None):
        """Loaned, received and profit per month for the last ``months`` months.

        Loans count in the month of their loan date; payments count in the
        month they were made, deduplicated per installment within the month.

        Returns:
            DataFrame with MONTHLY_COLUMNS.
        """
        today = today or date.today()
        loans_df = self.db.get_loans_df()
        payments_df = self.db.get_payments_df()

        if not loans_df.empty:
            loans_df['loan_date'] = pd.to_datetime(loans_df['loan_date'])
        if not payments_df.empty:
            payments_df['payment_date_dt'] = pd.to_datetime(payments_df['payment_date'])

        rows = []
        for month_start in self._month_starts(months, today):
            start = pd.Timestamp(month_start)
            end = start + pd.offsets.MonthBegin(1)

            if loans_df.empty:
                month_loans = loans_df
            else:
                month_loans = loans_df[(loans_df['loan_date'] >= start) & (loans_df['loan_date'] < end)]

            received = 0.0
            if not payments_df.empty:
                month_payments = payments_df[(payments_df['payment_date_dt'] >= start) &
                                             (payments_df['payment_date_dt'] < end)]
                received = float(dedupe_payments_df(month_payments)['payment_amount'].sum()) \
                    if not month_payments.empty else 0.0

            loaned = float(month_loans['loan_amount'].sum()) if not month_loans.empty else 0.0
            completed = int((month_loans['status'] == STATUS_COMPLETED).sum()) if not month_loans.empty else 0

            rows.append({
                "Month": month_start.strftime("%b/%Y"),
                "Loaned": round(loaned, 2),
                "Received": round(received, 2),
                "New Loans": len(month_loans),
                "Completed Loans": completed,
                "Profit": round(received - loaned, 2),
            })

        return pd.DataFrame(rows, columns=MONTHLY_COLUMNS)

    def client_report(self):
        """Totals per client, most profitable first.

        Status is "active" when every loan is open, "completed" when every
        loan is paid off, and "mixed" otherwise.

        Returns:
            DataFrame with CLIENT_COLUMNS.
        """
        loans_df = self.db.get_loans_df()
        if loans_df.empty:
            return pd.DataFrame(columns=CLIENT_COLUMNS)

        payments_df = dedupe_payments_df(self.db.get_payments_df())
        if payments_df.empty:
            paid = pd.Series(dtype=float)
        else:
            paid = payments_df.groupby('loan_id')['payment_amount'].sum()

        loans_df['paid'] = loans_df['id'].map(paid).fillna(0.0)
        loans_df['is_completed'] = loans_df['status'] == STATUS_COMPLETED
        loans_df['client_name'] = loans_df['client_name'].fillna("Unknown client")

        grouped = loans_df.groupby(['client_id', 'client_name']).agg(
            total_loans=('id', 'count'),
            total_amount=('loan_amount', 'sum'),
            total_paid=('paid', 'sum'),
            completed=('is_completed', 'sum'),
        ).reset_index()

        def status_of(row):
            if row['completed'] == 0:
                return "active"
            if row['completed'] == row['total_loans']:
                return "completed"
            return "mixed"

        report = pd.DataFrame({
            "Client": grouped['client_name'],
            "Total Loans": grouped['total_loans'].astype(int),
            "Total Amount": grouped['total_amount'].round(2),
            "Total Paid": grouped['total_paid'].round(2),
            "Profit": (grouped['total_paid'] - grouped['total_amount']).round(2),
            "Status": grouped.apply(status_of, axis=1),
        }, columns=CLIENT_COLUMNS)
        return report.sort_values(by="Profit", ascending=False, kind="stable").reset_index(drop=True)

    @staticmethod
    def _with_totals(df, label_column):
        """Append a TOTAL row summing the numeric columns."""
        if df.empty:
            return df
        sums = df.select_dtypes(include=['number']).sum()
        total_row = {col: sums[col] if col in sums else '' for col in df.columns}
        total_row[label_column] = 'TOTAL'
        return pd.concat([df, pd.DataFrame([total_row])], ignore_index=True)

    def build_report(self, kind, today=None):
        if kind == 'monthly':
            return self._with_totals(self.monthly_report(today=today), "Month")
        if kind == 'clients':
            df = self.client_report()
            df = self._with_totals(df.drop(columns=["Status"]), "Client") if not df.empty else df
            return df
        raise ValueError(f"Unknown report '{kind}'")

    def export_report(self, kind, output_path, progress_callback=None, today=None):
        """
        Export a report to the format implied by the file extension.

        Args:
            kind (str): 'monthly' or 'clients'.
            output_path (str): Target .xlsx, .csv or .pdf path.
            progress_callback (callable, optional): function(current, total, message)

        Returns:
            tuple: (bool, str) - (Success status, Result message or Error details).
        """
        try:
            if progress_callback:
                progress_callback(1, 3, "Collecting data...")
            df = self.build_report(kind, today=today)
            title = REPORT_TITLES[kind]

            if progress_callback:
                progress_callback(2, 3, "Writing file...")

            if output_path.endswith('.csv'):
                success, msg = self._export_to_csv(df, output_path)
            elif output_path.endswith('.pdf'):
                success, msg = self._export_to_pdf(df, output_path, title)
            else:
                success, msg = self._export_to_excel(df, output_path, title)

            if progress_callback:
                progress_callback(3, 3, "Done")
            return success, msg

        except ValueError as e:
            return False, str(e)
        except Exception as e:
            logger.exception("Error generating report")
            return False, str(e)

    def _export_to_excel(self, df, output_path, title):
        """Export DataFrame to Excel with formatting."""
        try:
            header_bg = self.db.get_setting("excel_header_bg", "#D7E4BC")
            total_bg = self.db.get_setting("excel_total_bg", "#F0F0F0")
            sheet_name = title[:31]

            with pd.ExcelWriter(output_path, engine='xlsxwriter') as writer:
                df.to_excel(writer, index=False, sheet_name=sheet_name)
                workbook = writer.book
                worksheet = writer.sheets[sheet_name]

                header_fmt = workbook.add_format({'bold': True, 'border': 1, 'bg_color': header_bg})
                money_fmt = workbook.add_format({'num_format': '#,##0.00'})
                total_fmt = workbook.add_format({'bold': True, 'border': 1, 'num_format': '#,##0.00',
                                                 'bg_color': total_bg})

                for col_num, value in enumerate(df.columns.values):
                    worksheet.write(0, col_num, value, header_fmt)

                worksheet.set_column(0, 0, 25)
                worksheet.set_column(1, max(len(df.columns) - 1, 1), 16, money_fmt)

                if not df.empty and df.iloc[-1, 0] == 'TOTAL':
                    total_row_idx = len(df)
                    for col_num, col_name in enumerate(df.columns):
                        worksheet.write(total_row_idx, col_num, df.iloc[-1][col_name], total_fmt)

            return True, "Report generated successfully."
        except Exception as e:
            logger.error("Excel export failed: %s", e)
            return False, f"Excel Export Failed: {e}"

    def _export_to_csv(self, df, output_path):
        """Export DataFrame to CSV."""
        try:
            df.to_csv(output_path, index=False)
            return True, "Report generated successfully (CSV)."
        except Exception as e:
            logger.error("CSV export failed: %s", e)
            return False, f"CSV Export Failed: {e}"

    def _report_html(self, df, title):
        money_columns = {"Loaned", "Received", "Profit", "Total Amount", "Total Paid"}
        formatters = {col: format_currency for col in df.columns if col in money_columns}
        html_table = df.to_html(index=False, classes='report-table', formatters=formatters)

        return f"""
        <!DOCTYPE html>
        <html>
        <head>
            <meta charset="utf-8">
            <style>
                body {{ font-family: Arial, sans-serif; padding: 20px; }}
                h1 {{ color: #2b5797; }}
                .period {{ color: #666; margin-bottom: 20px; }}
                table.report-table {{ width: 100%; border-collapse: collapse; font-size: 10px; }}
                table.report-table th {{
                    background-color: #D7E4BC; border: 1px solid #ccc; padding: 5px; text-align: left;
                }}
                table.report-table td {{ border: 1px solid #ddd; padding: 4px; }}
                table.report-table tr:last-child {{ font-weight: bold; background-color: #f0f0f0; }}
            </style>
        </head>
        <body>
            <h1>{title}</h1>
            {html_table}
            <div style="margin-top:20px; font-size: 9px; color: #999;">Generated on {datetime.now().strftime('%d/%m/%Y %H:%M')}</div>
        </body>
        </html>
        """

    def _export_to_pdf(self, df, output_path, title):
        """Export DataFrame to PDF via HTML and QWebEngineView."""
        if not self.printer_view_getter:
            return False, "PDF printing not available (UI dependency missing)."

        web_view = self.printer_view_getter()
        if not web_view:
            return False, "Printer View not initialized."

        try:
            ok = print_html_to_pdf(web_view, self._report_html(df, title), output_path, landscape=True)
        except Exception as e:
            logger.error("PDF export failed: %s", e)
            return False, f"Report Generation Failed: {e}"

        if ok:
            return True, "Report generated successfully."
        return False, "Export Failed: the PDF could not be written."
