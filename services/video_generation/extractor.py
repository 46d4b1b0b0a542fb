"""
Artifact reference extraction from poll responses.

The upstream API has changed its completion payload across versions, so the
video reference is looked up through an ordered list of shape matchers. Add a
new matcher to ``SHAPE_MATCHERS`` to support another shape; callers only ever
see ``extract_artifact_ref``.
"""

from typing import Any, Callable, Optional

ShapeMatcher = Callable[[dict], Optional[str]]


def _first(items: Any) -> Optional[dict]:
    if isinstance(items, list) and items and isinstance(items[0], dict):
        return items[0]
    return None


def _uri_of(obj: Any, *keys: str) -> Optional[str]:
    if not isinstance(obj, dict):
        return None
    for key in keys:
        value = obj.get(key)
        if isinstance(value, str) and value:
            return value
    return None


def match_generated_samples(payload: dict) -> Optional[str]:
    """generateVideoResponse.generatedSamples[0].video.uri"""
    response = payload.get("generateVideoResponse")
    if not isinstance(response, dict):
        return None
    sample = _first(response.get("generatedSamples"))
    return _uri_of(sample and sample.get("video"), "uri")


def match_result_generated_videos(payload: dict) -> Optional[str]:
    """result.generatedVideos[0].{video.uri | uri}"""
    result = payload.get("result")
    if not isinstance(result, dict):
        return None
    video = _first(result.get("generatedVideos"))
    if video is None:
        return None
    return _uri_of(video.get("video"), "uri") or _uri_of(video, "uri")


def match_generated_videos(payload: dict) -> Optional[str]:
    """generatedVideos[0].video.{uri | videoUri} (SDK-style payload)"""
    video = _first(payload.get("generatedVideos"))
    if video is None:
        return None
    return _uri_of(video.get("video"), "uri", "videoUri") or _uri_of(video, "uri")


SHAPE_MATCHERS: list[ShapeMatcher] = [
    match_generated_samples,
    match_result_generated_videos,
    match_generated_videos,
]


def extract_artifact_ref(raw_response: Optional[dict]) -> Optional[str]:
    """
    Locate the artifact reference in a poll response.

    Accepts either the full operation document (``{"done": ..., "response": ...}``)
    or the bare response payload. Returns None when no known shape matches.
    """
    if not isinstance(raw_response, dict):
        return None

    candidates = [raw_response]
    nested = raw_response.get("response")
    if isinstance(nested, dict):
        candidates.append(nested)

    for payload in candidates:
        for matcher in SHAPE_MATCHERS:
            ref = matcher(payload)
            if ref:
                return ref
    return None
