"""
systemd units — render the web UI unit and edit the daemon's environment.
"""

from __future__ import annotations

import re

from llmaura.core.models.target import InstallationTarget

DEFAULT_WEBUI_PORT = 8080


def render_webui_unit(target: InstallationTarget) -> str:
    """The complete unit file for the web UI service."""
    cache = target.cache_dir
    environment = " ".join(
        f'"{key}={value}"'
        for key, value in (
            ("DATA_DIR", target.data_dir),
            ("HF_HOME", cache),
            ("TRANSFORMERS_CACHE", cache),
            ("SENTENCE_TRANSFORMERS_HOME", cache),
        )
    )
    exec_start = f"{target.venv_dir}/bin/open-webui serve"
    if target.port_redirect.internal != DEFAULT_WEBUI_PORT:
        exec_start += f" --port {target.port_redirect.internal}"

    return (
        "[Unit]\n"
        "Description=Open WebUI Service\n"
        f"After=network.target {target.ollama_service}.service\n"
        "\n"
        "[Service]\n"
        "Type=simple\n"
        f"User={target.webui_user}\n"
        f"Group={target.webui_group}\n"
        f"WorkingDirectory={target.install_dir}\n"
        f"Environment={environment}\n"
        f"ExecStart={exec_start}\n"
        "Restart=always\n"
        "RestartSec=10\n"
        "\n"
        "[Install]\n"
        "WantedBy=multi-user.target\n"
    )


def environment_line(key: str, value: str) -> str:
    return f'Environment="{key}={value}"'


def set_service_environment(unit_text: str, key: str, value: str) -> str:
    """Return ``unit_text`` with exactly one ``Environment="key=value"`` line in [Service].

    Earlier single-variable lines for ``key`` in that section are
    dropped and the new line goes right after the section header. Other
    sections and unrelated lines are kept as they are. A unit with no
    [Service] section gets one appended.
    """
    stale = re.compile(rf'^\s*Environment="?{re.escape(key)}=')
    lines = unit_text.splitlines()
    out: list[str] = []
    in_service = False
    inserted = False

    for line in lines:
        stripped = line.strip()
        if stripped.startswith("[") and stripped.endswith("]"):
            in_service = stripped == "[Service]"
            out.append(line)
            if in_service and not inserted:
                out.append(environment_line(key, value))
                inserted = True
            continue
        if in_service and stale.match(line):
            continue
        out.append(line)

    if not inserted:
        if out and out[-1].strip():
            out.append("")
        out.extend(["[Service]", environment_line(key, value)])

    return "\n".join(out) + "\n"


def service_environment(unit_text: str, key: str) -> str | None:
    """Value of ``key`` set by an Environment line in [Service], if any."""
    pattern = re.compile(rf'(?:^|\s)"?{re.escape(key)}=([^"\s]*)"?')
    in_service = False
    value = None
    for line in unit_text.splitlines():
        stripped = line.strip()
        if stripped.startswith("[") and stripped.endswith("]"):
            in_service = stripped == "[Service]"
            continue
        if in_service and stripped.startswith("Environment="):
            match = pattern.search(stripped[len("Environment="):])
            if match:
                value = match.group(1)
    return value
