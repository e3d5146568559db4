"""Exporter daemon -- reads EnOcean telegrams and serves /metrics.

Starts one acquisition thread per configured serial port and an HTTP
server thread for the metrics endpoint, then waits.  Shuts down
cleanly on SIGINT or SIGTERM.

Example:
    Run from the command line::

        enocean-exporter enocean_exporter.toml -v
"""

import argparse
import logging
import signal
import sys
import threading

from werkzeug.serving import make_server

from enocean_exporter.acquisition import AcquisitionLoop
from enocean_exporter.config import DEFAULT_CONFIG, ConfigError, load_config
from enocean_exporter.eep import get_profile
from enocean_exporter.exposition import create_app
from enocean_exporter.registry import Registry
from enocean_exporter.serial_link import LinkError, open_link

log = logging.getLogger(__name__)

_shutdown = threading.Event()


def _on_signal(signum: int, frame) -> None:
    """Set the module-level shutdown event on SIGINT/SIGTERM."""
    _shutdown.set()


def open_links(cfg: dict, opener=open_link) -> dict:
    """Open every configured port before any thread starts.

    An unopenable port at startup is a configuration problem, so the
    first failure closes the links opened so far and re-raises.

    Raises:
        LinkError: If any port cannot be opened.
    """
    links = {}
    try:
        for port in cfg["ports"]:
            links[port] = opener(port, cfg["read_timeout"])
    except LinkError:
        for link in links.values():
            link.close()
        raise
    return links


def start_loops(cfg: dict, links: dict, registry: Registry,
                shutdown: threading.Event,
                opener=open_link) -> list[tuple[AcquisitionLoop, threading.Thread]]:
    """Create and start one acquisition thread per open link."""
    profile = get_profile(cfg["profile"])
    loops = []
    for port, link in links.items():
        loop = AcquisitionLoop(
            port, registry, profile,
            opener=opener,
            link=link,
            read_timeout=cfg["read_timeout"],
            backoff_initial=cfg["reconnect_initial"],
            backoff_max=cfg["reconnect_max"],
            max_retries=cfg["max_retries"],
            shutdown=shutdown,
        )
        thread = threading.Thread(
            target=loop.run, name="acquisition %s" % port, daemon=True,
        )
        thread.start()
        loops.append((loop, thread))
    return loops


def run(cfg: dict, links: dict, shutdown: threading.Event,
        opener=open_link, server_factory=make_server) -> Registry:
    """Serve metrics and acquire readings until *shutdown* is set.

    Returns the registry so callers can inspect the final state.
    """
    registry = Registry()
    app = create_app(registry, cfg["devices"], cfg["ports"], cfg["timestamps"])
    host, port = cfg["listen"]
    server = server_factory(host, port, app, threaded=True)
    server_thread = threading.Thread(
        target=server.serve_forever, name="http", daemon=True,
    )

    loops = start_loops(cfg, links, registry, shutdown, opener)
    server_thread.start()
    log.info("serving metrics on http://%s:%d/metrics", host, port)

    try:
        shutdown.wait()
    finally:
        log.info("shutting down")
        server.shutdown()
        for loop, _ in loops:
            loop.stop()
        for loop, thread in loops:
            thread.join(timeout=5.0)
            if thread.is_alive():
                log.warning("%s: acquisition thread did not stop", loop.port)
            else:
                log.debug("%s: %s", loop.port, loop.stats())
        server_thread.join(timeout=5.0)

    return registry


def main() -> None:
    """CLI entry point -- parse args, load config, run the daemon."""
    _shutdown.clear()

    parser = argparse.ArgumentParser(
        description="EnOcean temperature exporter for Prometheus",
    )
    parser.add_argument(
        "config", nargs="?", default=DEFAULT_CONFIG,
        help="path to TOML config file (default: ./%(default)s)",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="enable debug logging",
    )
    args = parser.parse_args()

    level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        level=level,
    )

    try:
        cfg = load_config(args.config)
    except (ConfigError, OSError) as exc:
        log.error("bad configuration: %s", exc)
        sys.exit(1)

    log.info(
        "starting: ports=%s profile=%s devices=%d listen=%s:%d",
        ",".join(cfg["ports"]), cfg["profile"], len(cfg["devices"]),
        cfg["listen"][0], cfg["listen"][1],
    )

    try:
        links = open_links(cfg)
    except LinkError as exc:
        log.error("%s", exc)
        sys.exit(1)

    signal.signal(signal.SIGINT, _on_signal)
    signal.signal(signal.SIGTERM, _on_signal)

    try:
        run(cfg, links, _shutdown)
    except OSError as exc:
        # Listen address already in use or not bindable.
        for link in links.values():
            link.close()
        log.error("cannot serve on %s:%d: %s", cfg["listen"][0], cfg["listen"][1], exc)
        sys.exit(1)


if __name__ == "__main__":
    main()
