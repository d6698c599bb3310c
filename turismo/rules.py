"""
Deterministic ingestion rules.

Sentinels, column positions and header labels used by the normalizer.
"""

TARGET_ENCODING = "utf-8"
CSV_DELIMITER = ","

SHEET_EXPORT_URL = (
    "https://docs.google.com/spreadsheets/d/"
    "1x8jI4RYM6nvhydMfxBn68x7shxyEuf_KWNC0iDq8mzw/export?format=csv&gid=0"
)

# Sentinels for blank fields
UNAVAILABLE = "Información no disponible"
NOT_AVAILABLE = "N/A"
NO_LINK = "#"

# Record fields in sheet order (columns B..H)
FIELDS = (
    "name",
    "latitude",
    "longitude",
    "safety_advice",
    "travel_info",
    "route_link",
    "tourism_link",
)

REQUIRED_FIELDS = ("name", "latitude", "longitude")

# Zero-indexed; column A holds a row number in the sheet
POSITIONAL_COLUMNS = {
    "name": 1,
    "latitude": 2,
    "longitude": 3,
    "safety_advice": 4,
    "travel_info": 5,
    "route_link": 6,
    "tourism_link": 7,
}

# First label is the canonical sheet header, the rest are accepted aliases
HEADER_LABELS = {
    "name": ("pueblo mágico", "pueblo magico", "nombre", "municipio"),
    "latitude": ("latitud", "lat"),
    "longitude": ("longitud", "lng", "lon"),
    "safety_advice": ("consejos de seguridad", "seguridad"),
    "travel_info": ("distancia / tiempo", "distancia/tiempo", "distancia"),
    "route_link": ("ruta/viaje desde gdl", "ruta / viaje desde gdl", "ruta"),
    "tourism_link": ("link turismo", "link_turismo"),
}

STRATEGY_POSITIONAL = "positional"
STRATEGY_HEADER = "header"

LAT_RANGE = (-90.0, 90.0)
LON_RANGE = (-180.0, 180.0)
