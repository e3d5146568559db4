"""Prometheus text exposition of the temperature registry.

Serves ``/metrics`` in the Prometheus text format (version 0.0.4) and a
small landing page at ``/``.  Device names from the config are joined
at render time; the registry itself only knows addresses.

Example:
    >>> app = create_app(registry, {0x01234567: "Kitchen"}, ["/dev/ttyUSB0"])
    >>> app.test_client().get("/metrics").status_code
    200
"""

from html import escape

from flask import Flask, Response

from enocean_exporter.registry import Registry, TemperatureReading
from enocean_exporter.telegram import format_address

METRIC_NAME = "enocean_temperature_celsius"
METRIC_HELP = "Temperature reported by an EnOcean sensor, in degrees Celsius."

CONTENT_TYPE = "text/plain; version=0.0.4; charset=utf-8"

_INDEX_HTML = """\
<!DOCTYPE html>
<html>
<head><title>EnOcean temperature exporter</title></head>
<body>
<h1>EnOcean temperature exporter</h1>
<ul>
{ports}
<li><a href="/metrics">metrics</a></li>
</ul>
</body>
</html>
"""


def _escape_label(value: str) -> str:
    return value.replace("\\", "\\\\").replace("\n", "\\n").replace('"', '\\"')


def _format_value(value: float) -> str:
    """Format a sample value; whole numbers drop the decimal part.

    Example:
        >>> _format_value(0.0)
        '0'
        >>> _format_value(21.5)
        '21.5'
    """
    if value.is_integer():
        return str(int(value))
    return repr(value)


def render_metrics(snapshot: dict[int, TemperatureReading],
                   names: dict[int, str], timestamps: bool = False) -> str:
    """Render a registry snapshot as Prometheus text.

    One ``enocean_temperature_celsius`` sample per reading, sorted by
    address.  The ``name`` label is added only for addresses in
    *names*.  With *timestamps*, each sample carries the time of its
    reading in milliseconds.
    """
    lines = [
        "# HELP %s %s" % (METRIC_NAME, METRIC_HELP),
        "# TYPE %s gauge" % METRIC_NAME,
    ]
    for address in sorted(snapshot):
        reading = snapshot[address]
        labels = 'address="%s"' % format_address(address)
        name = names.get(address)
        if name is not None:
            labels += ',name="%s"' % _escape_label(name)
        line = "%s{%s} %s" % (METRIC_NAME, labels, _format_value(reading.celsius))
        if timestamps:
            line += " %d" % int(reading.observed_at * 1000)
        lines.append(line)
    return "\n".join(lines) + "\n"


def create_app(registry: Registry, names: dict[int, str], ports: list[str],
               timestamps: bool = False) -> Flask:
    """Create the Flask application serving the registry.

    Args:
        registry: Registry read on every scrape.
        names: Display names keyed by device address.
        ports: Serial ports being read, shown on the landing page.
        timestamps: Append sample timestamps to ``/metrics`` output.
    """
    app = Flask(__name__)
    index_html = _INDEX_HTML.format(
        ports="\n".join("<li>port %s</li>" % escape(p) for p in ports)
    )

    @app.route("/")
    def index() -> str:
        """Serve the landing page."""
        return index_html

    @app.route("/metrics")
    def metrics() -> Response:
        """Render the current registry contents."""
        body = render_metrics(registry.snapshot(), names, timestamps)
        return Response(body, content_type=CONTENT_TYPE)

    return app
