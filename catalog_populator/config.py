# ===== CONFIGURATION & CONSTANTS =====
import os

# --- General Settings ---
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
CACHE_DIR = os.getenv("CACHE_DIR", "cache")
DEFAULT_CACHE_TTL = int(os.getenv("CACHE_TTL", "0"))  # seconds, 0 disables the disk cache
REQUEST_TIMEOUT = 25

# --- Record Store Settings ---
STORE_BACKEND = os.getenv("STORE_BACKEND", "sqlite").lower()  # "sqlite" or "cms"
DATABASE_PATH = os.getenv("DATABASE_PATH", "data/catalog.db")
CMS_URL = os.getenv("CMS_URL", "http://localhost:1337")

# "allow": distinct names may share a slug
# "merge": a name whose slug already exists resolves to the existing record
# "error": a slug collision raises StoreError
SLUG_COLLISION_POLICY = os.getenv("SLUG_COLLISION_POLICY", "allow").lower()

# --- Web Scraping & API Headers ---
COMMON_HEADERS = {
    'User-Agent': 'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/126.0.0.0 Safari/537.36',
    'Accept-Language': 'en-US,en;q=0.9',
    'Accept': 'application/json, text/plain, */*',
    'Accept-Encoding': 'gzip, deflate, br',
    'Connection': 'keep-alive'
}

# --- GOG Catalog Source ---
CATALOG_API_URL = os.getenv("CATALOG_API_URL", "https://catalog.gog.com/v1/catalog")
# Query-string encoded filters passed through to the catalog API verbatim
CATALOG_QUERY = os.getenv("CATALOG_QUERY", "limit=48&order=desc:trending&productType=in:game,pack")

# --- Detail Enricher ---
DETAIL_PAGE_URL = os.getenv("DETAIL_PAGE_URL", "https://www.gog.com/game/{slug}")
DESCRIPTION_SELECTOR = ".description"
SHORT_DESCRIPTION_LENGTH = 160

# --- Image Relay ---
GALLERY_FORMATTER_TOKEN = "_{formatter}"
IMAGE_EXTENSION = "jpg"
UPLOAD_REF = "game"

# --- Game Ingestor ---
PACING_DELAY = float(os.getenv("PACING_DELAY", "2"))  # seconds to wait after each product
MAX_GALLERY_IMAGES = int(os.getenv("MAX_GALLERY_IMAGES", "5"))
MAX_CONCURRENT_PRODUCTS = int(os.getenv("MAX_CONCURRENT_PRODUCTS", "8"))

# --- Entity Types ---
TAXONOMY_ENTITY_TYPES = ["developer", "publisher", "category", "platform"]
GAME_ENTITY_TYPE = "game"

# Game relation field -> taxonomy entity type
GAME_RELATIONS = {
    "categories": "category",
    "platforms": "platform",
    "developers": "developer",
    "publishers": "publisher",
}

# Entity type -> REST collection on the CMS
CMS_COLLECTIONS = {
    "game": "games",
    "developer": "developers",
    "publisher": "publishers",
    "category": "categories",
    "platform": "platforms",
}
