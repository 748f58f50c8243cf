"""Continously write air pollution measurements from OpenWeather to InfluxDB
"""
import sys
import signal
import logging
import config
import influx
import openweather
from errors import ConfigInvalid, InvalidEndpoint, RetriesExhausted
from scheduler import PollScheduler


EXIT_RETRIES_EXHAUSTED = 1
EXIT_STARTUP = 2


def _terminate(signum, frame):
    raise KeyboardInterrupt


def build_scheduler(settings: config.Settings) -> PollScheduler:
    """Wire fetcher and writer for the given settings

    Raises:
        InvalidEndpoint: OPENWEATHER_INFLUXDB_SERVER cannot be normalized
    """
    endpoint = influx.normalize_endpoint(settings.db_server)
    writer = influx.InfluxWriter(
        endpoint,
        settings.db_name,
        username=settings.db_user,
        password=settings.db_pass,
        token=settings.db_token,
        org=settings.db_org,
        timeout=settings.http_timeout,
    )
    logging.info("InfluxDB server set to: %s", endpoint)
    logging.info("If this is incorrect, ensure that OPENWEATHER_INFLUXDB_SERVER is set correctly.")
    logging.info("InfluxDB name set to %s", settings.db_name)
    logging.info("If this is incorrect, ensure that OPENWEATHER_INFLUXDB_NAME is set correctly.")
    if writer.auth_mode == "basic":
        logging.info("InfluxDB user added: %s", settings.db_user)
    elif writer.auth_mode == "token":
        logging.info("InfluxDB token authentication enabled")
    else:
        logging.info("InfluxDB authentication not added due to blank USER/PASS configuration.")

    fetcher = openweather.AirQualityFetcher(
        settings.api_key,
        settings.zipcode,
        country=settings.country,
        timeout=settings.http_timeout,
    )
    logging.info(
        "Polling %s every %s seconds, giving up after %s consecutive failures",
        settings.zipcode,
        settings.poll_timing,
        settings.max_retry,
    )
    return PollScheduler(
        fetcher.fetch, writer.write, settings.poll_timing, settings.max_retry
    )


def run() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S %Z",
    )
    signal.signal(signal.SIGTERM, _terminate)

    try:
        settings = config.load_settings()
        logging.getLogger().setLevel(settings.log_level)
        scheduler = build_scheduler(settings)
        scheduler.run()
    except (ConfigInvalid, InvalidEndpoint) as err:
        logging.error("Unable to start: %s", err)
        sys.exit(EXIT_STARTUP)
    except RetriesExhausted as err:
        logging.critical("Max errors reached (%s)! Terminating loop and script.", err)
        sys.exit(EXIT_RETRIES_EXHAUSTED)
    except KeyboardInterrupt:
        logging.warning("Interrupted")


if __name__ == "__main__":
    run()
