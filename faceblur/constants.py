STANDARD_EXTENSIONS = {".jpg", ".jpeg", ".png", ".tif", ".tiff", ".bmp", ".webp"}
HEIF_EXTENSIONS = {".heic", ".heif", ".hif"}
SUPPORTED_EXTENSIONS = STANDARD_EXTENSIONS | HEIF_EXTENSIONS
EXPORT_EXTENSIONS = {".jpg", ".jpeg", ".png"}

TARGET_TYPE_FACE = "face"
TARGET_TYPE_MANUAL = "manual"
VALID_TARGET_TYPES = {TARGET_TYPE_FACE, TARGET_TYPE_MANUAL}

BLUR_STYLE_PIXELLATE = "pixellate"
BLUR_STYLE_GAUSSIAN = "gaussian"
VALID_BLUR_STYLES = (BLUR_STYLE_PIXELLATE, BLUR_STYLE_GAUSSIAN)

# Rendered circles never shrink below this many image pixels.
MIN_RENDER_RADIUS = 8.0

FACE_RADIUS_FROM_BOX = 0.6
MANUAL_RADIUS_DEFAULT_RATIO = 0.08
MANUAL_RADIUS_MIN_RATIO = 0.03
MANUAL_RADIUS_MAX_RATIO = 0.25

FACE_SCALE_MIN = 0.5
FACE_SCALE_MAX = 2.0

DETECTION_CONFIDENCE_WEIGHT = 0.7
DETECTION_SIZE_WEIGHT = 0.3
DETECTION_SIZE_GAIN = 4.0

# A new face inherits the previous flag when its centre lies within this
# fraction of the larger of the two radii.
RECONCILE_MATCH_RATIO = 0.5

PIXELLATE_MIN_BLOCK = 8.0
PIXELLATE_WIDTH_RATIO = 0.05
GAUSSIAN_MIN_RADIUS = 2.0
GAUSSIAN_WIDTH_RATIO = 0.02

ZOOM_MIN = 1.0
ZOOM_MAX = 4.0
PAN_OVERSCROLL = 40.0

DEFAULT_JPEG_QUALITY = 95
