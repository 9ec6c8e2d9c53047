"""
Catalog of end-to-end scenarios.

Each scenario is an async function taking a ScenarioContext. It raises on
failure and may return the ScenarioOutcome of a publish-and-probe run so the
report can show what was probed. Scenarios that mutate server state restore
it before returning.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable, Optional

from ..api import (
    HLS_NO_CONTEXT,
    PUBLISH_SECRET,
    WEBSITE_TITLE,
    ManagementClient,
    create_self_signed_cert,
    finish_shielded,
    override_setting,
    query_setting,
)
from ..config import HarnessConfig
from ..models import ProbeResult, StreamFormat
from ..orchestrator import ScenarioOutcome, StreamOrchestrator, TerminationPolicy
from ..utils import CheckError, copy_to_dest, get_exists_file, get_logger, new_stream_id
from ..validator import check_hls_playlist

logger = get_logger(__name__)

VLIVE_UPLOAD_DIRS = [
    Path("/data/upload"),
    Path("platform/containers/data/upload"),
    Path("../platform/containers/data/upload"),
]
BILIBILI_TUTORIAL_BVID = "BV1844y1L7dL"


@dataclass
class ScenarioContext:
    """What every scenario gets to work with."""

    config: HarnessConfig
    client: ManagementClient
    orchestrator: StreamOrchestrator


ScenarioFunc = Callable[[ScenarioContext], Awaitable[Optional[ScenarioOutcome]]]
SkipRule = Callable[[HarnessConfig], Optional[str]]


@dataclass(frozen=True)
class Scenario:
    """A registered scenario."""

    name: str
    func: ScenarioFunc
    description: str
    media: bool = False
    skip: Optional[SkipRule] = None

    def skip_reason(self, config: HarnessConfig) -> Optional[str]:
        """Reason to skip this scenario under a configuration, or None."""
        if self.media and config.scenario.no_media_test:
            return "media tests disabled"
        if self.skip is not None:
            return self.skip(config)
        return None


SCENARIOS: dict[str, Scenario] = {}


def scenario(
    name: str,
    media: bool = False,
    skip: Optional[SkipRule] = None,
) -> Callable[[ScenarioFunc], ScenarioFunc]:
    """Register a scenario under a name; the docstring is its description."""

    def decorator(func: ScenarioFunc) -> ScenarioFunc:
        if name in SCENARIOS:
            raise ValueError(f"Scenario already registered: {name}")
        description = (func.__doc__ or "").strip().split("\n")[0]
        SCENARIOS[name] = Scenario(name, func, description, media=media, skip=skip)
        return func

    return decorator


def _skip_with_lets_encrypt(config: HarnessConfig) -> Optional[str]:
    if config.server.domain_lets_encrypt or config.server.https_insecure_verify:
        return "server uses lets-encrypt"
    return None


def _skip_bilibili(config: HarnessConfig) -> Optional[str]:
    if config.scenario.no_bilibili_test:
        return "bilibili tests disabled"
    return _skip_with_lets_encrypt(config)


def _skip_without_domain(config: HarnessConfig) -> Optional[str]:
    if not config.server.domain_lets_encrypt:
        return "no lets-encrypt domain configured"
    return None


def _expect(condition: bool, message: str, detail: object = None) -> None:
    if not condition:
        raise CheckError(message, detail=None if detail is None else str(detail))


async def _publish_secret(ctx: ScenarioContext) -> str:
    secret = await query_setting(ctx.client, PUBLISH_SECRET)
    _expect(bool(secret), "empty publish secret")
    return secret


# Management API


@scenario("ready")
async def ready(ctx: ScenarioContext) -> None:
    """Management API answers."""
    await ctx.client.wait_ready()


@scenario("query-publish-secret")
async def query_publish_secret(ctx: ScenarioContext) -> None:
    """Publish secret is set."""
    await _publish_secret(ctx)


@scenario("login-by-password")
async def login_by_password(ctx: ScenarioContext) -> None:
    """Login with the system password returns a token."""
    token = await ctx.client.login()
    _expect(bool(token), "empty token")


@scenario("bootstrap-envs")
async def bootstrap_envs(ctx: ScenarioContext) -> None:
    """Management runs in docker."""
    data = await ctx.client.request("/terraform/v1/mgmt/envs")
    _expect(bool(data and data.get("mgmtDocker")), "invalid envs response", data)


@scenario("bootstrap-init")
async def bootstrap_init(ctx: ScenarioContext) -> None:
    """Management is initialized."""
    data = await ctx.client.request("/terraform/v1/mgmt/init")
    _expect(bool(data and data.get("init")), "invalid init response", data)


@scenario("bootstrap-check")
async def bootstrap_check(ctx: ScenarioContext) -> None:
    """Management is not upgrading."""
    data = await ctx.client.request("/terraform/v1/mgmt/check")
    _expect(isinstance(data, dict) and not data.get("upgrading"), "invalid check response", data)


@scenario("bootstrap-versions")
async def bootstrap_versions(ctx: ScenarioContext) -> None:
    """Management reports a version."""
    await ctx.client.query_version()


@scenario("website-footer")
async def website_footer(ctx: ScenarioContext) -> None:
    """Website footer (ICP) can be updated."""
    await ctx.client.request(
        "/terraform/v1/mgmt/beian/update", {"beian": "icp", "text": "TestFooter"}
    )
    data = await ctx.client.request("/terraform/v1/mgmt/beian/query")
    _expect(bool(data) and data.get("icp") == "TestFooter", "invalid beian response", data)


@scenario("website-title")
async def website_title(ctx: ScenarioContext) -> None:
    """Website title can be updated and is restored afterwards."""
    async with override_setting(ctx.client, WEBSITE_TITLE, "TestTitle"):
        title = await query_setting(ctx.client, WEBSITE_TITLE)
        _expect(title == "TestTitle", f"invalid title {title!r}")


@scenario("update-publish-secret")
async def update_publish_secret(ctx: ScenarioContext) -> None:
    """Publish secret can be updated and is restored afterwards."""
    await _publish_secret(ctx)
    async with override_setting(ctx.client, PUBLISH_SECRET, "TestPublish"):
        secret = await query_setting(ctx.client, PUBLISH_SECRET)
        _expect(secret == "TestPublish", f"invalid publish secret {secret!r}")


@scenario("tutorials-bilibili", skip=_skip_bilibili)
async def tutorials_bilibili(ctx: ScenarioContext) -> None:
    """Bilibili tutorial lookup returns a title and a description."""
    data = await ctx.client.request(
        "/terraform/v1/mgmt/bilibili", {"bvid": BILIBILI_TUTORIAL_BVID}
    )
    _expect(
        bool(data) and bool(data.get("title")) and bool(data.get("desc")),
        "invalid bilibili response",
        data,
    )


@scenario("ssl-update-cert", skip=_skip_with_lets_encrypt)
async def ssl_update_cert(ctx: ScenarioContext) -> None:
    """A self-signed certificate can be installed."""
    key, crt = await create_self_signed_cert()
    await ctx.client.request("/terraform/v1/mgmt/ssl", {"key": key, "crt": crt})

    conf = await ctx.client.request("/terraform/v1/mgmt/cert/query")
    _expect(bool(conf), "empty cert response")
    _expect(conf.get("provider") == "ssl", f"invalid cert provider {conf.get('provider')!r}")
    _expect(conf.get("key") == key and conf.get("crt") == crt, "cert does not match the upload")


@scenario("letsencrypt-update-cert", skip=_skip_without_domain)
async def letsencrypt_update_cert(ctx: ScenarioContext) -> None:
    """A lets-encrypt certificate can be requested."""
    await ctx.client.request(
        "/terraform/v1/mgmt/letsencrypt", {"domain": ctx.config.server.domain_lets_encrypt}
    )

    conf = await ctx.client.request("/terraform/v1/mgmt/cert/query")
    _expect(bool(conf), "empty cert response")
    _expect(conf.get("provider") == "lets", f"invalid cert provider {conf.get('provider')!r}")
    _expect(bool(conf.get("key")) and bool(conf.get("crt")), "empty lets-encrypt cert")


@scenario("hphls-no-ctx")
async def hphls_no_ctx(ctx: ScenarioContext) -> None:
    """HLS without per-client context can be enabled."""
    async with override_setting(ctx.client, HLS_NO_CONTEXT, True):
        value = await query_setting(ctx.client, HLS_NO_CONTEXT)
        _expect(value is True, f"invalid noHlsCtx {value!r}")


@scenario("hphls-with-ctx")
async def hphls_with_ctx(ctx: ScenarioContext) -> None:
    """HLS with per-client context can be enabled."""
    async with override_setting(ctx.client, HLS_NO_CONTEXT, False):
        value = await query_setting(ctx.client, HLS_NO_CONTEXT)
        _expect(value is False, f"invalid noHlsCtx {value!r}")


# Media


async def _publish_and_probe_flv(
    ctx: ScenarioContext,
    name: str,
    stream_id: str,
    publish_url: str,
    format: StreamFormat = StreamFormat.FLV,
    wait_publisher_ready: bool = False,
) -> ScenarioOutcome:
    orchestrator = ctx.orchestrator
    outcome = await orchestrator.publish_and_probe(
        name,
        orchestrator.publish_spec(publish_url, format),
        orchestrator.probe_spec(f"{ctx.config.endpoints.http}/live/{stream_id}.flv", stream_id),
        policy=TerminationPolicy.FAST_QUIT,
        expect=orchestrator.expectation(),
        wait_publisher_ready=wait_publisher_ready,
    )
    outcome.raise_for_error()
    return outcome


@scenario("publish-rtmp-play-flv-secret-query", media=True)
async def publish_rtmp_play_flv_secret_query(ctx: ScenarioContext) -> ScenarioOutcome:
    """Publish RTMP with the secret in the query, play HTTP-FLV."""
    secret = await _publish_secret(ctx)
    stream_id = new_stream_id()
    url = f"{ctx.config.endpoints.rtmp}/live/{stream_id}?secret={secret}"
    return await _publish_and_probe_flv(ctx, "publish-rtmp-play-flv-secret-query", stream_id, url)


@scenario("publish-rtmp-play-flv-secret-stream", media=True)
async def publish_rtmp_play_flv_secret_stream(ctx: ScenarioContext) -> ScenarioOutcome:
    """Publish RTMP with the secret in the stream name, play HTTP-FLV."""
    secret = await _publish_secret(ctx)
    stream_id = new_stream_id("stream", secret)
    url = f"{ctx.config.endpoints.rtmp}/live/{stream_id}"
    return await _publish_and_probe_flv(ctx, "publish-rtmp-play-flv-secret-stream", stream_id, url)


@scenario("publish-srt-play-flv-secret-query", media=True)
async def publish_srt_play_flv_secret_query(ctx: ScenarioContext) -> ScenarioOutcome:
    """Publish SRT, play HTTP-FLV once the publisher is ready."""
    secret = await _publish_secret(ctx)
    stream_id = new_stream_id()
    url = f"{ctx.config.endpoints.srt}?streamid=#!::r=live/{stream_id}?secret={secret},m=publish"
    return await _publish_and_probe_flv(
        ctx,
        "publish-srt-play-flv-secret-query",
        stream_id,
        url,
        format=StreamFormat.MPEGTS,
        wait_publisher_ready=True,
    )


@scenario("publish-rtmp-play-hls-secret-query", media=True)
async def publish_rtmp_play_hls_secret_query(ctx: ScenarioContext) -> ScenarioOutcome:
    """Publish RTMP, play HLS; HLS probe scores are low so only duration counts."""
    secret = await _publish_secret(ctx)
    stream_id = new_stream_id()
    orchestrator = ctx.orchestrator
    outcome = await orchestrator.publish_and_probe(
        "publish-rtmp-play-hls-secret-query",
        orchestrator.publish_spec(f"{ctx.config.endpoints.rtmp}/live/{stream_id}?secret={secret}"),
        orchestrator.probe_spec(f"{ctx.config.endpoints.http}/live/{stream_id}.m3u8", stream_id),
        policy=TerminationPolicy.FAST_QUIT,
        expect=orchestrator.expectation(score=False),
    )
    outcome.raise_for_error()
    return outcome


async def _publish_rtmp_play_hls(
    ctx: ScenarioContext, name: str, no_context: bool
) -> ScenarioOutcome:
    """Publish and probe HLS, then check the first playlist while still live."""
    async with override_setting(ctx.client, HLS_NO_CONTEXT, no_context):
        secret = await _publish_secret(ctx)
        stream_id = new_stream_id()
        hls_url = f"{ctx.config.endpoints.http}/live/{stream_id}.m3u8"

        async def check_playlist(result: ProbeResult) -> None:
            body = await ctx.client.fetch_text(hls_url)
            error = check_hls_playlist(body, with_context=not no_context)
            if error is not None:
                raise error

        orchestrator = ctx.orchestrator
        outcome = await orchestrator.publish_and_probe(
            name,
            orchestrator.publish_spec(
                f"{ctx.config.endpoints.rtmp}/live/{stream_id}?secret={secret}"
            ),
            orchestrator.probe_spec(hls_url, stream_id),
            policy=TerminationPolicy.OBSERVE_THEN_STOP,
            expect=orchestrator.expectation(score=False),
            after_probe=check_playlist,
        )

    outcome.raise_for_error()
    return outcome


@scenario("publish-rtmp-play-hls-no-ctx", media=True)
async def publish_rtmp_play_hls_no_ctx(ctx: ScenarioContext) -> ScenarioOutcome:
    """HLS without context lists segments in the first playlist."""
    return await _publish_rtmp_play_hls(ctx, "publish-rtmp-play-hls-no-ctx", no_context=True)


@scenario("publish-rtmp-play-hls-with-ctx", media=True)
async def publish_rtmp_play_hls_with_ctx(ctx: ScenarioContext) -> ScenarioOutcome:
    """HLS with context redirects the first playlist to a context URL."""
    return await _publish_rtmp_play_hls(ctx, "publish-rtmp-play-hls-with-ctx", no_context=False)


async def _prepare_vlive_source(ctx: ScenarioContext) -> str:
    """Upload the sample file for virtual live and return its server path."""
    input_file = ctx.config.media.input_file
    copy_to_dest(input_file, *VLIVE_UPLOAD_DIRS)

    source = get_exists_file(input_file, *VLIVE_UPLOAD_DIRS)
    if source is None:
        raise CheckError(f"no copy of {input_file.name} in {[str(d) for d in VLIVE_UPLOAD_DIRS]}")

    if source.is_absolute() and str(source).startswith("/data/upload/"):
        return str(source)
    return f"upload/{source.name}"


def _check_vlive_codec(codec: dict, uuid: Optional[str]) -> None:
    _expect(codec.get("uuid") == uuid, f"invalid codec uuid {codec.get('uuid')!r}, {uuid!r}")

    audio = codec.get("audio") or {}
    _expect(
        audio.get("codec_name") == "aac"
        and audio.get("channels") == 2
        and str(audio.get("sample_rate")) == "44100",
        "invalid vlive audio codec",
        audio,
    )

    video = codec.get("video") or {}
    _expect(
        video.get("codec_name") == "h264"
        and video.get("profile") == "High"
        and video.get("width") == 768
        and video.get("height") == 320,
        "invalid vlive video codec",
        video,
    )


@scenario("publish-vlive-play-flv", media=True)
async def publish_vlive_play_flv(ctx: ScenarioContext) -> ScenarioOutcome:
    """Server-side virtual live stream plays as HTTP-FLV."""
    secret = await _publish_secret(ctx)
    source = await _prepare_vlive_source(ctx)

    uploaded = await ctx.client.request(f"/terraform/v1/ffmpeg/vlive/server?file={source}")
    _expect(isinstance(uploaded, dict), "invalid vlive server response", uploaded)

    data = await ctx.client.request(
        "/terraform/v1/ffmpeg/vlive/source", {"platform": "bilibili", "files": [uploaded]}
    )
    files = (data or {}).get("files") or []
    _expect(bool(files), "vlive source returned no files", data)
    _check_vlive_codec(files[0], uploaded.get("uuid"))

    conf = await ctx.client.request("/terraform/v1/ffmpeg/vlive/secret")
    bilibili = (conf or {}).get("bilibili")
    _expect(isinstance(bilibili, dict), "invalid bilibili vlive secret", conf)

    backup = {**bilibili, "action": "update"}
    stream_id = new_stream_id()
    await ctx.client.request(
        "/terraform/v1/ffmpeg/vlive/secret",
        {
            **backup,
            "secret": f"{stream_id}?secret={secret}",
            "server": "rtmp://localhost/live/",
            "enabled": True,
        },
    )

    try:
        orchestrator = ctx.orchestrator
        outcome = await orchestrator.publish_and_probe(
            "publish-vlive-play-flv",
            None,
            orchestrator.probe_spec(f"{ctx.config.endpoints.http}/live/{stream_id}.flv", stream_id),
            policy=TerminationPolicy.FAST_QUIT,
            expect=orchestrator.expectation(),
        )
    finally:
        await finish_shielded(ctx.client.request("/terraform/v1/ffmpeg/vlive/secret", backup))

    outcome.raise_for_error()
    return outcome
