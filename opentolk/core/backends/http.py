from __future__ import annotations

from collections.abc import Mapping

import httpx
import structlog

from opentolk.core.errors import HTTPFailedError, MissingConfigError, PluginTimeoutError
from opentolk.core.output import extract_json_path, parse_output
from opentolk.core.templates import resolve_template, resolve_value
from opentolk.schemas.manifest import HTTPConfig
from opentolk.schemas.result import Match, PluginResult

log = structlog.get_logger()

MAX_ERROR_BODY_CHARS = 500


async def run_http(
    match: Match,
    config: HTTPConfig,
    settings: Mapping[str, str],
    default_timeout: float,
    client: httpx.AsyncClient | None = None,
) -> PluginResult:
    plugin = match.plugin
    timeout = config.timeout or default_timeout

    url = resolve_template(config.url, match.input, settings).strip()
    try:
        parsed = httpx.URL(url)
    except httpx.InvalidURL:
        raise MissingConfigError("url", plugin.id) from None
    if parsed.scheme not in ("http", "https") or not parsed.host:
        raise MissingConfigError("url", plugin.id)

    headers = {k: resolve_template(v, match.input, settings) for k, v in config.headers.items()}
    kwargs = {"headers": headers, "timeout": timeout}
    if config.body is not None:
        kwargs["json"] = resolve_value(config.body, match.input, settings)

    try:
        if client is None:
            async with httpx.AsyncClient() as own_client:
                resp = await own_client.request(
                    config.method.upper(), url, follow_redirects=True, **kwargs
                )
        else:
            resp = await client.request(
                config.method.upper(), url, follow_redirects=True, **kwargs
            )
    except httpx.TimeoutException:
        log.warning("runner.http_timeout", plugin_id=plugin.id, timeout=timeout)
        raise PluginTimeoutError(timeout, plugin.id) from None
    except httpx.HTTPError as exc:
        log.warning("runner.http_transport_error", plugin_id=plugin.id, error=str(exc))
        raise HTTPFailedError(0, str(exc), plugin.id) from exc

    if not resp.is_success:
        log.warning("runner.http_failed", plugin_id=plugin.id, status=resp.status_code)
        raise HTTPFailedError(resp.status_code, resp.text[:MAX_ERROR_BODY_CHARS], plugin.id)

    text = resp.text
    if config.response_json_path:
        try:
            extracted = extract_json_path(resp.json(), config.response_json_path)
        except ValueError:
            extracted = None
        if extracted is not None:
            text = extracted
        else:
            log.info("runner.http_path_missing", plugin_id=plugin.id, path=config.response_json_path)

    log.info("runner.http_ok", plugin_id=plugin.id, status=resp.status_code)
    return parse_output(text, plugin.manifest.output_mode)
