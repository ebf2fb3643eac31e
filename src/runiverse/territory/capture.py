import configparser
import dataclasses
import logging
import math
import os.path
import sys
from typing import List, Optional

import pandas as pd
from funcy import decorator, take
from pyfiglet import Figlet
from rich.prompt import Confirm, Prompt

from runiverse.territory import config
from runiverse.territory.engine import CaptureSession
from runiverse.territory.gateway import InMemoryTerritoryGateway, RestTerritoryGateway, TerritoryGateway
from runiverse.territory.models import ClaimAction, GeoSample, Territory


CONSOLE_FORMAT = "%(message)s"
LOGFILE_FORMAT = "%(asctime)s|%(levelname)s|%(name)s|%(message)s"
LOGGER_NAME = "runiverse"

TRACK_COLUMNS = ["longitude", "latitude", "accuracy", "speed", "timestamp"]


def init_logging(logfile="runiverse.log"):
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.DEBUG)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    logger.addHandler(console_handler)

    if logfile:
        logfile_handler = logging.FileHandler(logfile, "w")
        logfile_handler.setLevel(logging.DEBUG)
        logfile_handler.setFormatter(logging.Formatter(LOGFILE_FORMAT))
        logger.addHandler(logfile_handler)


@decorator
def log(call):
    logging.getLogger(LOGGER_NAME).info(call._func.__name__)
    return call()


def banner():
    """
    Displays the name of this utility using incredible ASCII-art.
    """
    f = Figlet(font='slant')
    return f.renderText('runiverse')


def init_config(configuration_file):
    """
    Prompts the user for configuration values and then creates a valid configuration file.
    """
    print("""This utility will create a territory capture configuration file by prompting """
          """you for values for each of the configuration parameters.""")
    print()
    if not configuration_file:
        configuration_file = Prompt.ask("configuration file name", default="runiverse.ini")
    else:
        print(f'Creating configuration file {configuration_file}')
        print()

    if os.path.exists(configuration_file):
        print(f'WARNING: The {configuration_file} already exists.')
        overwrite = Confirm.ask("Overwrite?")
        if not overwrite:
            print('Not overwriting existing file. Exiting.')
            exit(1)

    defaults = config.Config()
    cfg_parser = configparser.ConfigParser()
    prompts = {
        'max_accuracy_m': "Maximum sample accuracy (m)",
        'min_sample_interval_s': "Minimum time between samples (s)",
        'smoothing_alpha': "Smoothing factor (0-1]",
        'max_reasonable_speed_mps': "Maximum plausible speed (m/s)",
        'min_step_m': "Minimum step between route points (m)",
        'min_speed_mps': "Minimum moving speed (m/s)",
        'max_route_points': "Maximum route points",
        'min_segment_samples': "Minimum points inside a loop",
        'min_distance_m': "Proximity closing distance (m)",
        'snap_closure': "Close loops by proximity? (True/False)",
        'max_closing_distance_m': "Maximum closing distance (m)",
        'min_path_length_m': "Minimum loop length (m)",
        'min_area_m2': "Minimum loop area (m2)",
        'min_bbox_diagonal_m': "Minimum loop extent (m)",
        'min_duration_s': "Minimum session duration (s)",
        'simplify_tolerance': "Simplification tolerance (degrees)",
        'min_loop_area_m2': "Minimum simplified loop area (m2)",
        'duplicate_area_ratio': "Duplicate claim area ratio",
        'api_url': "Territory API URL (blank for offline)",
        'territory_scope': "Territories to load (all/own)",
    }

    for section in dict.fromkeys(config.FIELD_SECTIONS.values()):
        print()
        print(f'{section} Parameters')
        print('--------------------------------------------------')
        cfg_parser.add_section(section)
        for name, prompt in prompts.items():
            if config.FIELD_SECTIONS[name] == section:
                cfg_parser.set(section, name, Prompt.ask(prompt, default=str(getattr(defaults, name))))

    print()
    print(f'Saving new configuration: {configuration_file}')
    with open(configuration_file, "tw") as file:
        cfg_parser.write(file)

    return configuration_file


def _optional(value) -> Optional[float]:
    if value is None:
        return None
    try:
        value = float(value)
    except (TypeError, ValueError):
        return None
    return value if math.isfinite(value) else None


def _timestamps(column: pd.Series) -> pd.Series:
    """POSIX seconds from either numeric seconds or ISO 8601 strings."""
    if pd.api.types.is_numeric_dtype(column):
        return column.astype(float)
    parsed = pd.to_datetime(column, utc=True, errors="coerce")
    return parsed.map(lambda t: t.timestamp() if not pd.isna(t) else None)


@log
def read_track(track_file) -> List[GeoSample]:
    """
    Read a CSV track with 'longitude' and 'latitude' columns and optional
    'accuracy', 'speed' and 'timestamp' columns.
    """
    df = pd.read_csv(track_file)
    missing = {"longitude", "latitude"} - set(df.columns)
    if missing:
        raise ValueError(f"Track file {track_file} is missing columns: {', '.join(sorted(missing))}")

    for column in TRACK_COLUMNS:
        if column not in df.columns:
            df[column] = None
    df["timestamp"] = _timestamps(df["timestamp"]) if df["timestamp"].notna().any() else None

    # Unusable coordinates are left for the session to drop
    return [
        GeoSample(
            longitude=pd.to_numeric(row.longitude, errors="coerce"),
            latitude=pd.to_numeric(row.latitude, errors="coerce"),
            accuracy_m=_optional(row.accuracy),
            speed_mps=_optional(row.speed),
            timestamp=_optional(row.timestamp),
        )
        for row in df.itertuples(index=False)
    ]


def gateway_for(configuration: config.Config, token: Optional[str] = None) -> TerritoryGateway:
    if configuration.api_url:
        return RestTerritoryGateway(configuration.api_url, token=token, timeout=configuration.request_timeout_s)
    return InMemoryTerritoryGateway(owner_id="offline")


@dataclasses.dataclass
class Claim:
    sample_index: int
    action: ClaimAction
    territory: Optional[Territory]


@dataclasses.dataclass
class ReplaySummary:
    samples: int = 0
    route_updates: int = 0
    rejections: List[str] = dataclasses.field(default_factory=list)
    claims: List[Claim] = dataclasses.field(default_factory=list)
    territories: List[Territory] = dataclasses.field(default_factory=list)


@log
def replay(configuration: config.Config, track_file, gateway: Optional[TerritoryGateway] = None) -> ReplaySummary:
    """
    Feed every sample of a recorded track through a capture session, then
    finalize the session and wait for outstanding claims.
    """
    gateway = gateway or gateway_for(configuration)
    session = CaptureSession(configuration, gateway=gateway)
    session.load_territories()

    samples = read_track(track_file)
    if configuration.number > 0:
        samples = take(configuration.number, samples)

    summary = ReplaySummary()
    for index, sample in enumerate(samples):
        result = session.handle_new_coordinate(sample)
        summary.samples += 1
        summary.route_updates += int(result.route_changed)
        _record(summary, index, result)

    _record(summary, summary.samples, session.finalize_session())
    session.close()
    summary.territories = session.get_territories()

    log_summary(summary)
    return summary


def _record(summary: ReplaySummary, index: int, result):
    if result.rejection:
        summary.rejections.append(result.rejection)
    if result.action is not None:
        territory = result.created_territory or result.merged_territory
        summary.claims.append(Claim(index, result.action, territory))


def log_summary(summary: ReplaySummary) -> ReplaySummary:
    logger = logging.getLogger(LOGGER_NAME)
    logger.info("Replay Summary")
    logger.info("==============")
    logger.info(f"Samples       : {summary.samples}")
    logger.info(f"Route updates : {summary.route_updates}")
    logger.info(f"Rejected loops: {len(summary.rejections)}")
    logger.info(f"Claims        : {len(summary.claims)}")
    for claim in summary.claims:
        if claim.territory is None:
            logger.info(f"  * sample {claim.sample_index}: {claim.action.value}")
        else:
            logger.info(
                f"  * sample {claim.sample_index}: {claim.action.value} "
                f"{claim.territory.area_m2:.0f} m2, {claim.territory.perimeter_m:.0f} m"
            )
    logger.info(f"Territories   : {len(summary.territories)}")
    logger.debug("Rejections:")
    for reason in summary.rejections:
        logger.debug(f"  + {reason}")
    return summary
