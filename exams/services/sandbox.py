# exams/services/sandbox.py
"""
HTTP client for a Piston-compatible code execution service.

    POST {base_url}/execute
    {language, version, files:[{name, content}], stdin, args,
     compile_timeout, run_timeout, compile_memory_limit, run_memory_limit}
    -> {language, version, run:{stdout, stderr, code, signal, output}, compile?}

A student's program failing is a normal result (success=False). The
service being unreachable, slow past the hard timeout, or answering with
something other than the shape above raises ExecutionError.
"""
import logging
import time
from dataclasses import dataclass
from typing import Optional

import requests

from common.enums import ExecutionStatus
from common.exceptions import ExecutionError
from exams import languages

log = logging.getLogger(__name__)

# seconds added on top of run+compile timeouts for the HTTP round trip
HTTP_SLACK_SECONDS = 5


@dataclass
class StageOutput:
    stdout: str
    stderr: str
    exit_code: Optional[int]


@dataclass
class ExecutionResult:
    language: str
    version: str
    success: bool
    stdout: str
    stderr: str
    exit_code: Optional[int]
    execution_time: float
    compile: Optional[StageOutput] = None

    @property
    def status(self):
        if self.compile is not None and self.compile.exit_code not in (0, None):
            return ExecutionStatus.COMPILE_ERROR
        return ExecutionStatus.SUCCESS if self.success else ExecutionStatus.RUNTIME_ERROR

    def as_dict(self):
        out = {
            "success": self.success,
            "stdout": self.stdout,
            "stderr": self.stderr,
            "exitCode": self.exit_code,
            "executionTime": self.execution_time,
        }
        if self.compile is not None:
            out["compile"] = {
                "stdout": self.compile.stdout,
                "stderr": self.compile.stderr,
                "exitCode": self.compile.exit_code,
            }
        return out


class PistonClient:
    def __init__(self, base_url, run_timeout_ms=5000, compile_timeout_ms=10000, memory_limit=-1, session=None):
        self.base_url = base_url.rstrip("/")
        self.run_timeout_ms = run_timeout_ms
        self.compile_timeout_ms = compile_timeout_ms
        self.memory_limit = memory_limit
        self.http = session or requests.Session()

    def _hard_timeout(self, run_timeout_ms):
        return (run_timeout_ms + self.compile_timeout_ms) / 1000 + HTTP_SLACK_SECONDS

    def run(self, language, code, stdin="", run_timeout_ms=None, version=None, args=None) -> ExecutionResult:
        run_timeout_ms = run_timeout_ms or self.run_timeout_ms
        payload = {
            "language": language,
            "version": version or languages.language_version(language),
            "files": [{"name": languages.file_name(language), "content": code}],
            "stdin": stdin or "",
            "args": args or [],
            "compile_timeout": self.compile_timeout_ms,
            "run_timeout": run_timeout_ms,
            "compile_memory_limit": self.memory_limit,
            "run_memory_limit": self.memory_limit,
        }

        started = time.monotonic()
        try:
            r = self.http.post(
                f"{self.base_url}/execute", json=payload, timeout=self._hard_timeout(run_timeout_ms)
            )
            r.raise_for_status()
            body = r.json()
            run = body["run"]
            compile_stage = body.get("compile")
            result = ExecutionResult(
                language=body.get("language", language),
                version=body.get("version", payload["version"]),
                success=run.get("code") == 0 and not run.get("stderr"),
                stdout=run.get("stdout") or "",
                stderr=run.get("stderr") or "",
                exit_code=run.get("code"),
                execution_time=round(time.monotonic() - started, 3),
                compile=StageOutput(
                    stdout=compile_stage.get("stdout") or "",
                    stderr=compile_stage.get("stderr") or "",
                    exit_code=compile_stage.get("code"),
                ) if compile_stage else None,
            )
        except requests.Timeout as e:
            log.error("Sandbox timed out after %.1fs (language=%s)", time.monotonic() - started, language)
            raise ExecutionError("Code execution timed out") from e
        except requests.RequestException as e:
            log.error("Sandbox request failed (language=%s): %s", language, e)
            raise ExecutionError(f"Piston execution failed: {e}") from e
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            log.error("Sandbox returned malformed response (language=%s): %s", language, e)
            raise ExecutionError("Malformed response from execution service") from e

        return result

    def runtimes(self):
        try:
            r = self.http.get(f"{self.base_url}/runtimes", timeout=HTTP_SLACK_SECONDS)
            r.raise_for_status()
            return r.json()
        except (requests.RequestException, ValueError) as e:
            raise ExecutionError(f"Failed to fetch runtimes: {e}") from e

    def close(self):
        self.http.close()


def log_execution(user, language, code, stdin="", result=None, error=None, attempt=None, question=None):
    """Audit row for one sandbox invocation, successful or not."""
    from exams.models import ExecutionLog

    if result is not None:
        return ExecutionLog.objects.create(
            user=user, attempt=attempt, question=question,
            language=language, code=code, stdin=stdin or "",
            stdout=result.stdout, stderr=result.stderr,
            exit_code=result.exit_code, execution_time=result.execution_time,
            status=result.status,
        )
    return ExecutionLog.objects.create(
        user=user, attempt=attempt, question=question,
        language=language, code=code, stdin=stdin or "",
        status=ExecutionStatus.SYSTEM_ERROR,
        error_message=str(error or "Execution failed")[:2000],
    )
