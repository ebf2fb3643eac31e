# Default configuration values
DEFAULT_MAX_ACCURACY_M = 25.0
DEFAULT_MIN_SAMPLE_INTERVAL_S = 0.75
DEFAULT_SMOOTHING_ALPHA = 0.25
DEFAULT_MAX_REASONABLE_SPEED_MPS = 12.0

DEFAULT_MIN_STEP_M = 3.0
DEFAULT_MIN_SPEED_MPS = 0.4
DEFAULT_MAX_ROUTE_POINTS = 2000

DEFAULT_MIN_SEGMENT_SAMPLES = 4
DEFAULT_MIN_DISTANCE_M = 10.0
DEFAULT_SNAP_CLOSURE = False

DEFAULT_MAX_CLOSING_DISTANCE_M = 30.0
DEFAULT_MIN_PATH_LENGTH_M = 120.0
DEFAULT_MIN_AREA_M2 = 500.0
DEFAULT_MIN_BBOX_DIAGONAL_M = 30.0
DEFAULT_MIN_DURATION_S = 20.0

DEFAULT_SIMPLIFY_TOLERANCE = 0.00005
DEFAULT_MIN_LOOP_AREA_M2 = 200.0
DEFAULT_DUPLICATE_AREA_RATIO = 0.05

# Share of the smaller ring that must lie inside the other for a duplicate
DUPLICATE_MIN_OVERLAP = 0.9

DEFAULT_API_URL = ''
DEFAULT_TERRITORY_SCOPE = 'all'
DEFAULT_REQUEST_TIMEOUT_S = 10.0
DEFAULT_NUMBER = -1

# Configuration sections
FILTER_SECTION_NAME = 'Filter'
ROUTE_SECTION_NAME = 'Route'
LOOP_SECTION_NAME = 'Loop'
VALIDATION_SECTION_NAME = 'Validation'
OWNERSHIP_SECTION_NAME = 'Ownership'
GATEWAY_SECTION_NAME = 'Gateway'

# Earth model
EARTH_RADIUS_M = 6371000.0
METERS_PER_DEGREE_LON = 111320.0
METERS_PER_DEGREE_LAT = 110574.0

# Territory scopes understood by the persistence gateway
TERRITORY_SCOPES = ('all', 'own')

LOCAL_ID_PREFIX = 'local-'
