"""
Vertex AI REST client for the simulated customer's dialogue.
"""
import logging
from typing import Optional, Dict, Any, List

import requests
import google.auth
import google.auth.transport.requests
from google.oauth2 import service_account

from ...config import VERTEX_LOCATION, MODEL_NAME, LLM_TIMEOUT, MAX_OUTPUT_TOKENS

logger = logging.getLogger("llm_client")

SCOPES = ["https://www.googleapis.com/auth/cloud-platform"]


class VertexRestClient:
    """
    Calls Gemini's generateContent over plain HTTPS.

    Credentials come from a service-account file when one is configured,
    otherwise from the application default credentials. An access token
    rejected mid-session is refreshed and the request retried once.
    """

    def __init__(self,
                 project: str,
                 location: str = VERTEX_LOCATION,
                 model: str = MODEL_NAME,
                 credentials_json: Optional[str] = None,
                 timeout: int = LLM_TIMEOUT):
        self.project = project
        self.location = location
        self.model = model
        self.credentials_json = credentials_json
        self.timeout = timeout
        self._credentials = None

    @property
    def endpoint(self) -> str:
        return (f"https://{self.location}-aiplatform.googleapis.com/v1/projects/{self.project}"
                f"/locations/{self.location}/publishers/google/models/{self.model}:generateContent")

    def _load_credentials(self):
        if self.credentials_json:
            return service_account.Credentials.from_service_account_file(self.credentials_json, scopes=SCOPES)
        creds, _ = google.auth.default(scopes=SCOPES)
        return creds

    def _access_token(self, force_refresh: bool = False) -> str:
        if self._credentials is None:
            self._credentials = self._load_credentials()
        if force_refresh or not self._credentials.valid:
            self._credentials.refresh(google.auth.transport.requests.Request())
        return self._credentials.token

    @staticmethod
    def build_body(prompt_text: str,
                   system_instruction: Optional[str],
                   temperature: float,
                   max_output_tokens: int,
                   stop_sequences: Optional[List[str]] = None) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "contents": [{"role": "user", "parts": [{"text": prompt_text}]}],
            "generationConfig": {
                "temperature": float(temperature),
                "maxOutputTokens": int(max_output_tokens),
            },
        }
        if system_instruction:
            body["systemInstruction"] = {"parts": [{"text": system_instruction}]}
        if stop_sequences:
            body["generationConfig"]["stopSequences"] = list(stop_sequences)
        return body

    def _post(self, body: Dict[str, Any], token: str) -> requests.Response:
        headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }
        try:
            return requests.post(self.endpoint, headers=headers, json=body, timeout=self.timeout)
        except requests.RequestException as e:
            raise RuntimeError(f"Vertex REST request failed: {e}")

    def generate_content(self,
                         prompt_text: str,
                         system_instruction: Optional[str] = None,
                         temperature: float = 0.0,
                         max_output_tokens: int = MAX_OUTPUT_TOKENS,
                         stop_sequences: Optional[List[str]] = None) -> str:
        """
        Generate one completion.

        Raises:
            RuntimeError: On transport or HTTP errors, or a response with no text
        """
        body = self.build_body(prompt_text, system_instruction, temperature,
                               max_output_tokens, stop_sequences)
        resp = self._post(body, self._access_token())
        if resp.status_code == 401:
            logger.warning("Access token rejected, refreshing and retrying once")
            resp = self._post(body, self._access_token(force_refresh=True))
        if resp.status_code >= 400:
            raise RuntimeError(f"Vertex REST error {resp.status_code}: {resp.text}")

        return self._parse_response_text(resp.json())

    @staticmethod
    def _parse_response_text(resp_json: Dict[str, Any]) -> str:
        """
        Concatenate the text parts of the first candidate.

        Raises:
            RuntimeError: If the candidate carries no text (blocked or truncated)
        """
        cands = resp_json.get("candidates") or []
        if not cands:
            if isinstance(resp_json.get("text"), str):
                return resp_json["text"]
            blocked = (resp_json.get("promptFeedback") or {}).get("blockReason")
            raise RuntimeError(f"Vertex response had no candidates (blockReason={blocked})")

        parts = (cands[0].get("content") or {}).get("parts") or []
        texts = [p["text"] for p in parts if isinstance(p, dict) and isinstance(p.get("text"), str)]
        if not texts:
            raise RuntimeError(f"Vertex candidate had no text (finishReason={cands[0].get('finishReason')})")
        return "".join(texts)
