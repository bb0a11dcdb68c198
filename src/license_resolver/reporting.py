from __future__ import annotations

import json
from pathlib import Path
from typing import Iterable

from jinja2 import Environment, select_autoescape

from .types import ResolutionReport


env = Environment(autoescape=select_autoescape(["html", "xml"]))


def _resolution_rows(report: ResolutionReport) -> Iterable[dict]:
    for resolution in report.resolutions:
        yield {
            "key": resolution.key,
            "license": resolution.license,
            "fully_identified": resolution.fully_identified,
            "partially_identified": resolution.partially_identified,
            "unresolved_sources": resolution.unresolved_sources,
        }


def render_json(report: ResolutionReport) -> str:
    payload = {
        "generated_at": report.generated_at.isoformat(),
        "settings": report.settings.as_dict(),
        "total": len(report.resolutions),
        "unresolved": len(report.unresolved),
        "artifacts": list(_resolution_rows(report)),
        "by_license": [{"license": license, "artifacts": keys} for license, keys in report.by_license],
    }
    return json.dumps(payload, indent=2)


def render_markdown(report: ResolutionReport) -> str:
    lines = [
        "# License Resolution Report",
        "",
        f"Generated at: {report.generated_at.isoformat()}",
        f"Artifacts: {len(report.resolutions)} ({len(report.unresolved)} not fully identified)",
    ]

    lines.append("\n## Artifacts\n")
    lines.append("| Artifact | License | Identified | Unresolved sources |")
    lines.append("| --- | --- | --- | --- |")
    for row in _resolution_rows(report):
        if row["fully_identified"]:
            identified = "yes"
        elif row["partially_identified"]:
            identified = "partial"
        else:
            identified = "no"
        sources = "; ".join(row["unresolved_sources"]) or "None"
        lines.append(f"| {row['key']} | {row['license']} | {identified} | {sources} |")

    lines.append("\n## By license\n")
    lines.append("| License | Artifacts |")
    lines.append("| --- | --- |")
    for license, keys in report.by_license:
        lines.append(f"| {license} | {', '.join(keys)} |")

    return "\n".join(lines)


def render_html(report: ResolutionReport) -> str:
    template = env.from_string(
        """
<!doctype html>
<html lang=\"en\">
<head>
  <meta charset=\"utf-8\" />
  <title>License Resolution Report</title>
  <style>
    body { font-family: sans-serif; margin: 2rem; }
    table { border-collapse: collapse; width: 100%; margin-bottom: 2rem; }
    th, td { border: 1px solid #ccc; padding: 0.4rem 0.6rem; text-align: left; }
    th { background: #f4f4f4; }
    .partial { color: #a66300; }
    .unresolved { color: #b00020; }
  </style>
</head>
<body>
  <h1>License Resolution Report</h1>
  <p>Generated at: {{ generated_at }}</p>
  <p>Artifacts: {{ rows|length }} ({{ unresolved }} not fully identified)</p>

  <h2>Artifacts</h2>
  <table>
    <tr><th>Artifact</th><th>License</th><th>Identified</th><th>Unresolved sources</th></tr>
    {% for row in rows %}
    <tr>
      <td>{{ row.key }}</td>
      {% if row.fully_identified %}
      <td>{{ row.license }}</td><td>yes</td>
      {% elif row.partially_identified %}
      <td class=\"partial\">{{ row.license }}</td><td>partial</td>
      {% else %}
      <td class=\"unresolved\">{{ row.license }}</td><td>no</td>
      {% endif %}
      <td>{% for url in row.unresolved_sources %}<a href=\"{{ url }}\">{{ url }}</a>{% if not loop.last %}<br />{% endif %}{% else %}None{% endfor %}</td>
    </tr>
    {% endfor %}
  </table>

  <h2>By license</h2>
  <table>
    <tr><th>License</th><th>Artifacts</th></tr>
    {% for license, keys in by_license %}
    <tr><td>{{ license }}</td><td>{{ keys|join(", ") }}</td></tr>
    {% endfor %}
  </table>
</body>
</html>
"""
    )
    return template.render(
        generated_at=report.generated_at.isoformat(),
        rows=list(_resolution_rows(report)),
        unresolved=len(report.unresolved),
        by_license=report.by_license,
    )


def render_report(report: ResolutionReport, fmt: str) -> str:
    fmt = fmt.lower()
    if fmt == "json":
        return render_json(report)
    if fmt in {"md", "markdown"}:
        return render_markdown(report)
    if fmt == "html":
        return render_html(report)
    raise ValueError(f"Unknown report format: {fmt}")


def write_report(report: ResolutionReport, fmt: str, destination: Path | None) -> str:
    output = render_report(report, fmt)
    if destination:
        destination.parent.mkdir(parents=True, exist_ok=True)
        destination.write_text(output)
    return output
