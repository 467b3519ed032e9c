# URL classification for supported video platforms
import logging
import re
from urllib.parse import urlparse, parse_qs

from yt_dlp import YoutubeDL
from yt_dlp.utils import DownloadError

import config
from errors import DependencyError

logger = logging.getLogger(__name__)

_NUMERIC_ID = re.compile(r"^\d+$")


def _parse(url: str):
	"""Returns (host, path segments, parsed url) or None when the string is not a usable URL."""
	try:
		parsed = urlparse(str(url or "").strip())
		host = parsed.hostname
	except ValueError:
		return None
	if not host:
		return None
	host = host.lower()
	if host.startswith("www."):
		host = host[len("www."):]
	parts = [p for p in parsed.path.split("/") if p]
	return host, parts, parsed


def get_youtube_id(url: str) -> str | None:
	parsed_url = _parse(url)
	if parsed_url is None:
		return None
	host, parts, parsed = parsed_url

	if host == "youtu.be":
		return parts[0] if parts else None

	if "youtube.com" in host:
		v = parse_qs(parsed.query).get("v", [None])[0]
		if v:
			return v
		if len(parts) >= 2 and parts[0] in ("shorts", "embed"):
			return parts[1]

	return None


def get_tiktok_id(url: str) -> str | None:
	"""
	Extracts the numeric id from tiktok.com/@user/video/<id>.
	Short links (vm.tiktok.com, tiktok.com/t/...) carry a redirect code, not an id,
	and must go through resolve_tiktok_short_url first.
	"""
	parsed_url = _parse(url)
	if parsed_url is None:
		return None
	host, parts, _ = parsed_url

	if host not in ("tiktok.com", "m.tiktok.com"):
		return None
	if "video" not in parts:
		return None
	index = parts.index("video")
	if index + 1 < len(parts) and _NUMERIC_ID.match(parts[index + 1]):
		return parts[index + 1]
	return None


def get_video_info(url: str) -> dict | None:
	"""Returns {"platform", "videoId"} for a YouTube or TikTok URL, YouTube rules first."""
	youtube_id = get_youtube_id(url)
	if youtube_id:
		return {"platform": "youtube", "videoId": youtube_id}

	tiktok_id = get_tiktok_id(url)
	if tiktok_id:
		return {"platform": "tiktok", "videoId": tiktok_id}

	return None


def is_tiktok_short_url(url: str) -> bool:
	parsed_url = _parse(url)
	if parsed_url is None:
		return False
	host, parts, _ = parsed_url
	if host in ("vm.tiktok.com", "vt.tiktok.com"):
		return True
	return host == "tiktok.com" and bool(parts) and parts[0] == "t"


def resolve_tiktok_short_url(url: str) -> str:
	"""
	Follows a TikTok short link with yt-dlp and returns the canonical video URL.
	Raises DependencyError when the link cannot be resolved to a TikTok video.
	"""
	opts = {
		"quiet": True,
		"skip_download": True,
		"no_warnings": True,
		"socket_timeout": config.RESOLVER_TIMEOUT_SECONDS,
	}

	try:
		with YoutubeDL(opts) as ydl:
			# process=False stops after the short-link extractor hands back the target URL
			info = ydl.extract_info(url, download=False, process=False)
	except DownloadError as e:
		logger.warning(f"Short link resolution failed for {url}: {e}")
		raise DependencyError("Could not resolve TikTok URL") from e

	resolved = (info or {}).get("url") or (info or {}).get("webpage_url")
	logger.debug(f"Resolved {url} -> {resolved}")
	if not resolved:
		raise DependencyError("Could not resolve TikTok URL")

	video_info = get_video_info(resolved)
	if not video_info or video_info["platform"] != "tiktok":
		raise DependencyError("Could not resolve TikTok URL")
	return resolved
