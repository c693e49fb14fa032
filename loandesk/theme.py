from loandesk.config import SETTING_THEME

THEME_LIGHT = "Light"
THEME_DARK = "Dark"


class Theme:
    LIGHT = {
        "bg_primary": "#F1F5F9",      # Window background
        "bg_secondary": "#FFFFFF",    # Cards, sidebar
        "bg_sidebar": "#0F3D3E",      # Deep teal
        "text_primary": "#0F172A",
        "text_secondary": "#475569",
        "text_sidebar": "#E2E8F0",
        "accent": "#0D9488",          # Teal 600
        "accent_hover": "#0F766E",
        "border": "#E2E8F0",
        "input_bg": "#FFFFFF",
        "card_bg": "#FFFFFF",
        "card_border": "#E2E8F0",
        "card_hover_border": "#0D9488",
        "card_selected_bg": "#F0FDFA",
        "card_selected_border": "#0D9488",
        "success": "#16A34A",
        "danger": "#DC2626",
        "warning": "#D97706",
        "info": "#0284C7",
        "danger_bg": "#FEF2F2",
        "warning_bg": "#FFFBEB",
        "success_bg": "#F0FDF4",
        "info_bg": "#F0F9FF",
        "scrollbar_bg": "#E2E8F0",
        "scrollbar_handle": "#94A3B8",
    }

    DARK = {
        "bg_primary": "#0B1120",
        "bg_secondary": "#1E293B",
        "bg_sidebar": "#042F2E",
        "text_primary": "#F8FAFC",
        "text_secondary": "#94A3B8",
        "text_sidebar": "#CBD5E1",
        "accent": "#2DD4BF",          # Teal 400
        "accent_hover": "#14B8A6",
        "border": "#334155",
        "input_bg": "#334155",
        "card_bg": "#1E293B",
        "card_border": "#334155",
        "card_hover_border": "#2DD4BF",
        "card_selected_bg": "#134E4A",
        "card_selected_border": "#2DD4BF",
        "success": "#4ADE80",
        "danger": "#F87171",
        "warning": "#FBBF24",
        "info": "#38BDF8",
        "danger_bg": "#450A0A",
        "warning_bg": "#451A03",
        "success_bg": "#052E16",
        "info_bg": "#082F49",
        "scrollbar_bg": "#334155",
        "scrollbar_handle": "#475569",
    }


# Colors per urgency class on the upcoming payments screen
URGENCY_COLOR_KEYS = {
    "overdue": ("danger", "danger_bg"),
    "today": ("warning", "warning_bg"),
    "urgent": ("warning", "warning_bg"),
    "upcoming": ("info", "info_bg"),
}


class ThemeManager:
    def __init__(self, db_manager):
        self.db = db_manager
        self.current_theme_name = self.db.get_setting(SETTING_THEME, THEME_LIGHT)
        self.colors = self._palette(self.current_theme_name)

    @staticmethod
    def _palette(theme_name):
        return Theme.DARK if theme_name == THEME_DARK else Theme.LIGHT

    def set_theme(self, theme_name):
        self.current_theme_name = theme_name
        self.db.set_setting(SETTING_THEME, theme_name)
        self.colors = self._palette(theme_name)

    def toggle_theme(self):
        new_theme = THEME_LIGHT if self.is_dark else THEME_DARK
        self.set_theme(new_theme)
        return new_theme

    def get_color(self, key):
        return self.colors.get(key, "#ff0000")  # Red marks a missing key

    def urgency_colors(self, urgency):
        """(foreground, background) for an urgency class."""
        fg, bg = URGENCY_COLOR_KEYS.get(urgency, ("info", "info_bg"))
        return self.get_color(fg), self.get_color(bg)

    @property
    def is_dark(self):
        return self.current_theme_name == THEME_DARK

    def base_stylesheet(self):
        """Application-wide stylesheet shared by every view."""
        c = self.colors
        return f"""
            QWidget {{ background-color: {c['bg_primary']}; color: {c['text_primary']}; font-size: 13px; }}
            QLineEdit, QComboBox, QDateEdit, QDoubleSpinBox, QSpinBox, QTextEdit {{
                background-color: {c['input_bg']}; border: 1px solid {c['border']};
                border-radius: 4px; padding: 5px; color: {c['text_primary']};
            }}
            QPushButton {{
                background-color: {c['accent']}; color: white; border: none;
                border-radius: 4px; padding: 7px 14px; font-weight: bold;
            }}
            QPushButton:hover {{ background-color: {c['accent_hover']}; }}
            QPushButton:disabled {{ background-color: {c['border']}; color: {c['text_secondary']}; }}
            QTableWidget {{
                background-color: {c['bg_secondary']}; gridline-color: {c['border']};
                border: 1px solid {c['border']};
            }}
            QHeaderView::section {{
                background-color: {c['bg_primary']}; color: {c['text_secondary']};
                border: none; border-bottom: 1px solid {c['border']}; padding: 6px; font-weight: bold;
            }}
            QScrollBar:vertical {{ background: {c['scrollbar_bg']}; width: 10px; }}
            QScrollBar::handle:vertical {{ background: {c['scrollbar_handle']}; border-radius: 5px; }}
        """
