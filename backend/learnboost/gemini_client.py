from __future__ import annotations
import asyncio
import logging
import httpx
from typing import Any, Dict, List, Optional
from .errors import GenerationError, GenerationParseError, GenerationTimeout, GenerationUnavailable
from .settings import Settings, settings as default_settings

logger = logging.getLogger(__name__)


def _short_model_name(model: Any) -> Optional[str]:
	if isinstance(model, str):
		name = model
	elif isinstance(model, dict) and model.get("name"):
		name = str(model["name"])
	else:
		return None
	return name.split("/")[-1]


def pick_preferred_model(models: List[Any], preferred: List[str]) -> Optional[str]:
	"""Choose a model from a ``models`` listing.

	The first model matching a preferred prefix (in preference order) and
	advertising ``generateContent`` wins; otherwise the first usable model.
	"""
	usable: List[str] = []
	for m in models or []:
		short = _short_model_name(m)
		if not short:
			continue
		methods = m.get("supportedGenerationMethods") if isinstance(m, dict) else None
		# Listings without method info are assumed to support generateContent
		if isinstance(methods, list) and "generateContent" not in methods:
			continue
		usable.append(short)
	for pref in preferred:
		for name in usable:
			if name == pref or name.startswith(pref):
				return name
	return usable[0] if usable else None


def extract_text(data: Any) -> str:
	if not isinstance(data, dict):
		raise GenerationParseError("Unexpected Gemini response shape")
	candidates = data.get("candidates") or []
	if candidates:
		parts = ((candidates[0] or {}).get("content") or {}).get("parts") or []
		texts = [p.get("text") for p in parts if isinstance(p, dict) and p.get("text")]
		if texts:
			return "\n".join(texts)
	try:
		text = data["output"][0]["content"][0]["text"]
	except (KeyError, IndexError, TypeError):
		text = None
	if isinstance(text, str) and text:
		return text
	raise GenerationParseError("Gemini response contained no text")


class GeminiClient:
	def __init__(
		self,
		api_key: Optional[str] = None,
		*,
		base_url: Optional[str] = None,
		model: Optional[str] = None,
		config: Optional[Settings] = None,
		http_client: Optional[httpx.AsyncClient] = None,
	) -> None:
		self.config = config or default_settings
		self.api_key = api_key or self.config.gemini_api_key
		if not self.api_key:
			raise GenerationUnavailable("GEMINI_API_KEY is not configured")
		self.base_url = (base_url or self.config.gemini_base_url).rstrip("/")
		# Model chosen for this client's lifetime; discovered lazily when not configured
		self._model: Optional[str] = model or self.config.gemini_model
		self._client = http_client or httpx.AsyncClient(timeout=self.config.gemini_timeout_seconds)

	async def resolve_model(self) -> str:
		if self._model:
			return self._model
		picked: Optional[str] = None
		try:
			r = await self._client.get(f"{self.base_url}/models", params={"key": self.api_key})
			r.raise_for_status()
			picked = pick_preferred_model(r.json().get("models") or [], self.config.preferred_models())
		except (httpx.HTTPError, ValueError, AttributeError) as err:
			logger.warning("Failed to list Gemini models: %s", err)
		if not picked:
			picked = self.config.gemini_fallback_model
			logger.warning("No suitable model discovered, using %s", picked)
		logger.info("Gemini model selected: %s", picked)
		self._model = picked
		return picked

	async def generate(self, prompt: str, *, max_output_tokens: int = 800, temperature: float = 0.2) -> str:
		# httpx timeouts apply per connect/read/write step; this bounds the whole call
		bound = self.config.gemini_timeout_seconds
		try:
			return await asyncio.wait_for(self._generate(prompt, max_output_tokens, temperature), bound)
		except asyncio.TimeoutError as err:
			raise GenerationTimeout(f"Gemini did not answer within {bound:g}s") from err

	async def _generate(self, prompt: str, max_output_tokens: int, temperature: float) -> str:
		payload: Dict[str, Any] = {
			"contents": [{"parts": [{"text": prompt}]}],
			"generationConfig": {"temperature": temperature, "maxOutputTokens": max_output_tokens},
		}
		model = await self.resolve_model()
		url = f"{self.base_url}/models/{model}:generateContent"
		try:
			r = await self._client.post(url, params={"key": self.api_key}, json=payload)
			r.raise_for_status()
		except httpx.TimeoutException as err:
			raise GenerationTimeout(f"Gemini did not answer within {self.config.gemini_timeout_seconds:g}s") from err
		except httpx.HTTPStatusError as err:
			logger.error("Gemini returned HTTP %s: %s", err.response.status_code, err.response.text[:500])
			raise GenerationError(f"Gemini request failed with status {err.response.status_code}") from err
		except httpx.RequestError as err:
			raise GenerationError(f"Gemini request failed: {err}") from err
		try:
			data = r.json()
		except ValueError as err:
			raise GenerationParseError("Gemini response was not JSON") from err
		return extract_text(data)

	async def aclose(self) -> None:
		await self._client.aclose()
