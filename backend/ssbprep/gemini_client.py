from __future__ import annotations
import logging
import httpx
from typing import Any, Dict, List, Optional, Tuple
from .settings import settings

logger = logging.getLogger(__name__)


class GeminiClient:
	def __init__(self, api_key: Optional[str] = None, *, base_url: Optional[str] = None, model: Optional[str] = None) -> None:
		self.api_key = api_key or settings.gemini_api_key
		if not self.api_key:
			raise ValueError("GEMINI_API_KEY is not configured")
		self.model = model or settings.gemini_model
		self.provider = settings.gemini_provider
		if self.provider == "vertex":
			region = settings.vertex_region
			project = settings.vertex_project or "placeholder-project"
			# Vertex AI Generative REST endpoint (API key via header)
			self.base_url = base_url or (
				f"https://{region}-aiplatform.googleapis.com/v1/projects/{project}/locations/{region}/publishers/google/models/{self.model}:generateContent"
			)
			self._auth_in_query = False
		else:
			# Google AI Studio (Generative Language API)
			self.base_url = base_url or f"https://generativelanguage.googleapis.com/v1beta/models/{self.model}:generateContent"
			self._auth_in_query = True
		self._client = httpx.AsyncClient(timeout=settings.gemini_timeout_seconds)
		self._fallback_client: Optional[httpx.AsyncClient] = None
		self._fallback_enabled = bool(settings.openrouter_api_key)
		self._openrouter_api_key = settings.openrouter_api_key
		self._openrouter_model = settings.openrouter_model
		self._openrouter_base_url = settings.openrouter_base_url
		self._openrouter_headers = {
			"Authorization": f"Bearer {self._openrouter_api_key}" if self._openrouter_api_key else "",
			"Content-Type": "application/json",
			"HTTP-Referer": settings.openrouter_referer,
			"X-Title": settings.openrouter_title,
		}
		if self._fallback_enabled:
			self._fallback_client = httpx.AsyncClient(timeout=settings.gemini_timeout_seconds)

	async def generate(self, prompt: str, *, system: Optional[str] = None, thinking_budget: Optional[int] = None) -> str:
		payload: Dict[str, Any] = {"contents": [{"parts": [{"text": prompt}]}]}
		if system:
			payload["systemInstruction"] = {"parts": [{"text": system}]}
		return await self._post_payload(
			payload,
			thinking_budget=thinking_budget,
			fallback_prompt=prompt,
		)

	async def generate_json(self, parts: List[Dict[str, Any]], schema: Dict[str, Any]) -> str:
		"""Structured output: the model is constrained to ``schema`` and returns JSON text."""
		payload: Dict[str, Any] = {
			"contents": [{"role": "user", "parts": parts}],
			"generationConfig": {"responseMimeType": "application/json", "responseSchema": schema},
		}
		# Fallback keeps the prompt text; inline media is dropped there
		text_only = "\n\n".join(p["text"] for p in parts if "text" in p)
		has_media = any("inline_data" in p for p in parts)
		return await self._post_payload(
			payload,
			fallback_prompt=text_only if text_only and not has_media else None,
			allow_fallback=not has_media,
		)

	async def generate_multimodal(
		self,
		parts: List[Dict[str, Any]],
		*,
		role: str = "user",
		thinking_budget: Optional[int] = None,
		allow_fallback: bool = False,
	) -> str:
		payload: Dict[str, Any] = {"contents": [{"role": role, "parts": parts}]}
		return await self._post_payload(
			payload,
			thinking_budget=thinking_budget,
			fallback_prompt=None,
			allow_fallback=allow_fallback,
		)

	async def chat(self, contents: List[Dict[str, Any]], *, system: str) -> str:
		payload: Dict[str, Any] = {
			"contents": contents,
			"systemInstruction": {"parts": [{"text": system}]},
		}
		last = contents[-1]["parts"][0].get("text") if contents else None
		return await self._post_payload(payload, fallback_prompt=last)

	async def generate_grounded(self, prompt: str) -> Tuple[str, List[Dict[str, str]]]:
		"""Search-grounded generation. Returns the text and the web sources cited."""
		payload: Dict[str, Any] = {
			"contents": [{"parts": [{"text": prompt}]}],
			"tools": [{"google_search": {}}],
		}
		data = await self._request(payload)
		candidate = self._first_candidate(data)
		text = self._join_text(candidate)
		chunks = (candidate.get("groundingMetadata") or {}).get("groundingChunks") or []
		sources = [
			{"title": (c.get("web") or {}).get("title") or "", "uri": c["web"]["uri"]}
			for c in chunks
			if isinstance(c, dict) and (c.get("web") or {}).get("uri")
		]
		return text, sources

	async def generate_inline(self, parts: List[Dict[str, Any]], generation_config: Dict[str, Any]) -> Tuple[str, str]:
		"""Return (mime_type, base64 data) of the first inline part, for image and speech models."""
		payload: Dict[str, Any] = {
			"contents": [{"role": "user", "parts": parts}],
			"generationConfig": generation_config,
		}
		data = await self._request(payload)
		candidate = self._first_candidate(data)
		for part in (candidate.get("content") or {}).get("parts") or []:
			inline = part.get("inlineData") or part.get("inline_data")
			if inline and inline.get("data"):
				return inline.get("mimeType") or inline.get("mime_type") or "application/octet-stream", inline["data"]
		raise RuntimeError("Gemini response contained no inline data")

	async def _request(self, payload: Dict[str, Any]) -> Dict[str, Any]:
		params: Dict[str, Any] = {}
		headers: Dict[str, str] = {}
		if self._auth_in_query:
			params["key"] = self.api_key
		else:
			headers["x-goog-api-key"] = self.api_key
		r = await self._client.post(self.base_url, params=params, headers=headers, json=payload)
		r.raise_for_status()
		return r.json()

	@staticmethod
	def _first_candidate(data: Dict[str, Any]) -> Dict[str, Any]:
		candidates = data.get("candidates") or []
		if not candidates:
			raise RuntimeError(f"Gemini returned no candidates: {str(data)[:300]}")
		return candidates[0]

	@staticmethod
	def _join_text(candidate: Dict[str, Any]) -> str:
		parts = (candidate.get("content") or {}).get("parts") or []
		return "".join(p.get("text", "") for p in parts if isinstance(p, dict))

	async def _post_payload(
		self,
		payload: Dict[str, Any],
		*,
		thinking_budget: Optional[int] = None,
		fallback_prompt: Optional[str],
		allow_fallback: bool = True,
	) -> str:
		if thinking_budget is not None:
			try:
				budget_tokens = int(thinking_budget)
			except (TypeError, ValueError):
				budget_tokens = 0
			config = dict(payload.get("generationConfig") or {})
			config["thinkingConfig"] = {"thinkingBudget": budget_tokens}
			payload = {**payload, "generationConfig": config}
		last_error: Optional[Exception] = None
		data: Optional[Dict[str, Any]] = None
		try:
			data = await self._request(payload)
		except httpx.HTTPStatusError as http_err:
			if thinking_budget is not None:
				config = dict(payload.get("generationConfig") or {})
				config.pop("thinkingConfig", None)
				fallback_payload = {**payload, "generationConfig": config}
				if not config:
					fallback_payload.pop("generationConfig")
				try:
					data = await self._request(fallback_payload)
				except (httpx.HTTPError, ValueError) as err:
					last_error = err
			else:
				last_error = http_err
		except httpx.RequestError as net_err:
			last_error = net_err
		if last_error is None and data is not None:
			try:
				return self._join_text(self._first_candidate(data))
			except (RuntimeError, AttributeError, TypeError) as err:
				last_error = RuntimeError(f"Unexpected Gemini response: {err}")
		logger.error("Gemini call to %s failed: %s", self.model, last_error)
		if not allow_fallback or not self._fallback_enabled:
			raise last_error or RuntimeError("Gemini call failed and no fallback configured")
		if fallback_prompt is None:
			raise last_error or RuntimeError("Gemini call failed and fallback prompt unavailable")
		return await self._fallback_generate(fallback_prompt, last_error)

	async def aclose(self) -> None:
		await self._client.aclose()
		if self._fallback_client is not None:
			await self._fallback_client.aclose()

	async def _fallback_generate(self, prompt: str, primary_error: Optional[Exception]) -> str:
		if not self._fallback_client or not self._openrouter_api_key:
			raise primary_error or RuntimeError("Fallback requested but OpenRouter is not configured")
		headers = {k: v for k, v in self._openrouter_headers.items() if v}
		payload: Dict[str, Any] = {
			"model": self._openrouter_model,
			"messages": [{"role": "user", "content": prompt}],
		}
		try:
			r = await self._fallback_client.post(
				self._openrouter_base_url,
				headers=headers,
				json=payload,
			)
			r.raise_for_status()
			data = r.json()
			return data["choices"][0]["message"]["content"]
		except Exception as fallback_err:
			if primary_error is not None:
				raise RuntimeError(
					f"Gemini primary call failed ({primary_error}); fallback via OpenRouter also failed"
				) from fallback_err
			raise fallback_err
