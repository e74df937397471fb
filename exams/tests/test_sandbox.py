from unittest.mock import MagicMock

import requests
from django.test import SimpleTestCase

from common.enums import ExecutionStatus
from common.exceptions import ExecutionError
from exams.services.sandbox import HTTP_SLACK_SECONDS, PistonClient


def _response(body=None, status=200, json_error=None):
    r = MagicMock()
    r.status_code = status
    if status >= 400:
        r.raise_for_status.side_effect = requests.HTTPError(f"{status} Server Error")
    if json_error is not None:
        r.json.side_effect = json_error
    else:
        r.json.return_value = body
    return r


def _client(response=None, error=None):
    http = MagicMock()
    if error is not None:
        http.post.side_effect = error
        http.get.side_effect = error
    else:
        http.post.return_value = response
        http.get.return_value = response
    return PistonClient("http://piston:2000/api/v2/", run_timeout_ms=5000, compile_timeout_ms=10000, session=http), http


class PistonRunTests(SimpleTestCase):
    def test_payload_matches_execute_contract(self):
        client, http = _client(_response({
            "language": "python", "version": "3.10.0",
            "run": {"stdout": "5\n", "stderr": "", "code": 0, "signal": None, "output": "5\n"},
        }))

        result = client.run("python", "print(5)", stdin="2 3", run_timeout_ms=2000)

        url = http.post.call_args.args[0]
        kwargs = http.post.call_args.kwargs
        self.assertEqual(url, "http://piston:2000/api/v2/execute")
        self.assertEqual(kwargs["json"], {
            "language": "python",
            "version": "3.10.0",
            "files": [{"name": "main.py", "content": "print(5)"}],
            "stdin": "2 3",
            "args": [],
            "compile_timeout": 10000,
            "run_timeout": 2000,
            "compile_memory_limit": -1,
            "run_memory_limit": -1,
        })
        self.assertEqual(kwargs["timeout"], 12 + HTTP_SLACK_SECONDS)
        self.assertTrue(result.success)
        self.assertEqual(result.stdout, "5\n")
        self.assertEqual(result.exit_code, 0)
        self.assertEqual(result.status, ExecutionStatus.SUCCESS)

    def test_default_timeout_and_file_name_per_language(self):
        client, http = _client(_response({"run": {"stdout": "", "stderr": "", "code": 0}}))
        client.run("java", "class Main {}")
        payload = http.post.call_args.kwargs["json"]
        self.assertEqual(payload["run_timeout"], 5000)
        self.assertEqual(payload["files"][0]["name"], "Main.java")
        self.assertEqual(payload["version"], "15.0.2")

    def test_stderr_marks_run_unsuccessful(self):
        client, _ = _client(_response({"run": {"stdout": "5", "stderr": "warning: deprecated", "code": 0}}))
        result = client.run("python", "print(5)")
        self.assertFalse(result.success)
        self.assertEqual(result.status, ExecutionStatus.RUNTIME_ERROR)

    def test_nonzero_exit_marks_run_unsuccessful(self):
        client, _ = _client(_response({"run": {"stdout": "", "stderr": "", "code": 1}}))
        self.assertFalse(client.run("python", "exit(1)").success)

    def test_compile_failure_is_reported(self):
        client, _ = _client(_response({
            "compile": {"stdout": "", "stderr": "main.cpp:1: error", "code": 1},
            "run": {"stdout": "", "stderr": "", "code": None},
        }))
        result = client.run("cpp", "int main(")
        self.assertEqual(result.status, ExecutionStatus.COMPILE_ERROR)
        self.assertEqual(result.as_dict()["compile"]["stderr"], "main.cpp:1: error")

    def test_timeout_raises_execution_error(self):
        client, _ = _client(error=requests.Timeout("read timed out"))
        with self.assertRaisesMessage(ExecutionError, "Code execution timed out"):
            client.run("python", "while True: pass")

    def test_connection_failure_raises_execution_error(self):
        client, _ = _client(error=requests.ConnectionError("refused"))
        with self.assertRaisesMessage(ExecutionError, "Piston execution failed"):
            client.run("python", "print(1)")

    def test_non_2xx_raises_execution_error(self):
        client, _ = _client(_response({}, status=500))
        with self.assertRaises(ExecutionError):
            client.run("python", "print(1)")

    def test_body_without_run_stage_is_malformed(self):
        client, _ = _client(_response({"message": "runtime unknown"}))
        with self.assertRaisesMessage(ExecutionError, "Malformed response"):
            client.run("python", "print(1)")

    def test_non_json_body_is_malformed(self):
        client, _ = _client(_response(json_error=ValueError("Expecting value")))
        with self.assertRaisesMessage(ExecutionError, "Malformed response"):
            client.run("python", "print(1)")


class PistonRuntimesTests(SimpleTestCase):
    def test_runtimes_lists_installed_languages(self):
        client, http = _client(_response([{"language": "python", "version": "3.10.0"}]))
        self.assertEqual(len(client.runtimes()), 1)
        self.assertEqual(http.get.call_args.args[0], "http://piston:2000/api/v2/runtimes")

    def test_unreachable_service_raises(self):
        client, _ = _client(error=requests.ConnectionError("refused"))
        with self.assertRaises(ExecutionError):
            client.runtimes()
