# viewer_style.py
# Shared colors and fonts for the BMP viewer widgets.

BG_MAIN = "#f0f2f5"
BG_TOOLBAR = "#2f3e4e"
BG_PANEL = "#ffffff"
BG_BUTTON = "#4a6fa5"
FG_BUTTON = "#ffffff"
FG_TEXT = "#1f2933"
FG_SUBTEXT = "#52606d"

FONT_HEADER = ("Segoe UI", 11, "bold")
FONT_TEXT = ("Segoe UI", 10)
FONT_MONO = ("Consolas", 9)
FONT_BUTTON = ("Segoe UI", 10, "bold")

ZOOM_STEP = 1.25
PALETTE_COLUMNS = 16
PALETTE_CELL = 16
