"""Error taxonomy for the knowledge-test lifecycle.

Every error carries a short machine-readable ``kind`` and the HTTP status the
API answers with. Nothing here is retried internally; the caller decides.
"""
from __future__ import annotations


class KnowledgeTestError(Exception):
	kind = "error"
	status_code = 500

	def __init__(self, message: str) -> None:
		super().__init__(message)
		self.message = message

	def to_dict(self) -> dict:
		return {"error": self.kind, "detail": self.message}


class InvalidArgument(KnowledgeTestError):
	kind = "invalid_argument"
	status_code = 400


class NoSubmissionYet(InvalidArgument):
	kind = "no_submission"


class NotFound(KnowledgeTestError):
	kind = "not_found"
	status_code = 404


class StorageError(KnowledgeTestError):
	kind = "storage_error"
	status_code = 500


class GenerationError(KnowledgeTestError):
	kind = "generation_failed"
	status_code = 502


class GenerationParseError(GenerationError):
	kind = "generation_parse_error"


class EmptyGenerationError(GenerationError):
	kind = "empty_generation"


class GenerationTimeout(GenerationError):
	kind = "generation_timeout"
	status_code = 504


class GenerationUnavailable(GenerationError):
	kind = "generation_unavailable"
	status_code = 503
