import configparser
import dataclasses
import os.path

from runiverse.territory import constants


class ConfigurationError(Exception):
    """Raised when a configuration file cannot be turned into a Config."""

    pass


@dataclasses.dataclass
class Config:
    # Filter
    max_accuracy_m: float = constants.DEFAULT_MAX_ACCURACY_M
    min_sample_interval_s: float = constants.DEFAULT_MIN_SAMPLE_INTERVAL_S
    smoothing_alpha: float = constants.DEFAULT_SMOOTHING_ALPHA
    max_reasonable_speed_mps: float = constants.DEFAULT_MAX_REASONABLE_SPEED_MPS
    # Route
    min_step_m: float = constants.DEFAULT_MIN_STEP_M
    min_speed_mps: float = constants.DEFAULT_MIN_SPEED_MPS
    max_route_points: int = constants.DEFAULT_MAX_ROUTE_POINTS
    # Loop
    min_segment_samples: int = constants.DEFAULT_MIN_SEGMENT_SAMPLES
    min_distance_m: float = constants.DEFAULT_MIN_DISTANCE_M
    snap_closure: bool = constants.DEFAULT_SNAP_CLOSURE
    # Validation
    max_closing_distance_m: float = constants.DEFAULT_MAX_CLOSING_DISTANCE_M
    min_path_length_m: float = constants.DEFAULT_MIN_PATH_LENGTH_M
    min_area_m2: float = constants.DEFAULT_MIN_AREA_M2
    min_bbox_diagonal_m: float = constants.DEFAULT_MIN_BBOX_DIAGONAL_M
    min_duration_s: float = constants.DEFAULT_MIN_DURATION_S
    # Ownership
    simplify_tolerance: float = constants.DEFAULT_SIMPLIFY_TOLERANCE
    min_loop_area_m2: float = constants.DEFAULT_MIN_LOOP_AREA_M2
    duplicate_area_ratio: float = constants.DEFAULT_DUPLICATE_AREA_RATIO
    # Gateway
    api_url: str = constants.DEFAULT_API_URL
    territory_scope: str = constants.DEFAULT_TERRITORY_SCOPE
    request_timeout_s: float = constants.DEFAULT_REQUEST_TIMEOUT_S
    number: int = constants.DEFAULT_NUMBER

    def show(self):
        print()
        print('Using configuration:')
        for k, v in self.__dict__.items():
            print(f'  + {k}: {v}')


# Maps each Config field to the INI section it is read from.
FIELD_SECTIONS = {
    'max_accuracy_m': constants.FILTER_SECTION_NAME,
    'min_sample_interval_s': constants.FILTER_SECTION_NAME,
    'smoothing_alpha': constants.FILTER_SECTION_NAME,
    'max_reasonable_speed_mps': constants.FILTER_SECTION_NAME,
    'min_step_m': constants.ROUTE_SECTION_NAME,
    'min_speed_mps': constants.ROUTE_SECTION_NAME,
    'max_route_points': constants.ROUTE_SECTION_NAME,
    'min_segment_samples': constants.LOOP_SECTION_NAME,
    'min_distance_m': constants.LOOP_SECTION_NAME,
    'snap_closure': constants.LOOP_SECTION_NAME,
    'max_closing_distance_m': constants.VALIDATION_SECTION_NAME,
    'min_path_length_m': constants.VALIDATION_SECTION_NAME,
    'min_area_m2': constants.VALIDATION_SECTION_NAME,
    'min_bbox_diagonal_m': constants.VALIDATION_SECTION_NAME,
    'min_duration_s': constants.VALIDATION_SECTION_NAME,
    'simplify_tolerance': constants.OWNERSHIP_SECTION_NAME,
    'min_loop_area_m2': constants.OWNERSHIP_SECTION_NAME,
    'duplicate_area_ratio': constants.OWNERSHIP_SECTION_NAME,
    'api_url': constants.GATEWAY_SECTION_NAME,
    'territory_scope': constants.GATEWAY_SECTION_NAME,
    'request_timeout_s': constants.GATEWAY_SECTION_NAME,
    'number': constants.GATEWAY_SECTION_NAME,
}


def config_parser_factory(configuration_file):
    """
    Returns a ConfigParser by reading the specified file.
    """
    if configuration_file is None or not os.path.exists(configuration_file):
        raise ValueError(f'Unable to find configuration file {configuration_file}')
    cfg_parser = configparser.ConfigParser(interpolation=configparser.ExtendedInterpolation())
    cfg_parser.read(configuration_file)
    return cfg_parser


def _get_configuration_value(section, name, value_type, config_parser, overrides):
    """
    Returns a value from the provided config parser; any value for the key that
    is provided in the 'overrides' dictionary will take precedence.
    """
    if overrides.get(name) is not None:
        return overrides.get(name)
    if value_type is bool:
        return config_parser.getboolean(section, name)
    elif value_type is int:
        return config_parser.getint(section, name)
    elif value_type is float:
        return config_parser.getfloat(section, name)
    else:
        return config_parser.get(section, name)


def configuration(config_parser, overrides=None):
    """
    Returns a valid Config object that is populated from the provided config
    parser, with values overriden with anything provided in 'overrides'.
    Options missing from the file fall back to the defaults in 'constants'.
    """
    overrides = overrides or {}
    defaults = Config()
    config_parser['DEFAULT'] = {
        field.name: str(getattr(defaults, field.name))
        for field in dataclasses.fields(Config)
    }
    values = {}
    try:
        for field in dataclasses.fields(Config):
            section = FIELD_SECTIONS[field.name]
            if not config_parser.has_section(section):
                config_parser.add_section(section)
            values[field.name] = _get_configuration_value(
                section, field.name, type(getattr(defaults, field.name)), config_parser, overrides
            )
    except ValueError as e:
        raise ConfigurationError('Unable to read the configuration file', e) from e

    return Config(**values)


def validate(configuration):
    """
    Validates each value in the configuration.
    """
    validations = [
        ['max_accuracy_m', lambda v: v > 0, 'The max_accuracy_m must be positive.'],
        ['min_sample_interval_s', lambda v: v >= 0, 'The min_sample_interval_s must not be negative.'],
        ['smoothing_alpha', lambda v: 0 < v <= 1, 'The smoothing_alpha must be in (0, 1].'],
        ['max_reasonable_speed_mps', lambda v: v > 0, 'The max_reasonable_speed_mps must be positive.'],
        ['min_step_m', lambda v: v >= 0, 'The min_step_m must not be negative.'],
        ['max_route_points', lambda v: v >= 4, 'The max_route_points must be at least 4.'],
        ['min_segment_samples', lambda v: v >= 1, 'The min_segment_samples must be at least 1.'],
        ['simplify_tolerance', lambda v: v >= 0, 'The simplify_tolerance must not be negative.'],
        ['duplicate_area_ratio', lambda v: 0 <= v < 1, 'The duplicate_area_ratio must be in [0, 1).'],
        ['territory_scope', lambda v: v in constants.TERRITORY_SCOPES, 'The territory_scope must be "all" or "own".'],
        ['request_timeout_s', lambda v: v > 0, 'The request_timeout_s must be positive.'],
    ]
    errors = [msg for name, fn, msg in validations if not fn(getattr(configuration, name))]
    return len(errors) == 0, errors
