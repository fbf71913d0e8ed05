#!/usr/bin/env python3
"""
Line-oriented JSON-RPC 2.0 front end for request-rules.

A web stack written in any language can keep one of these processes
running and hand it request inputs to check. Every stdin line is one
request object and every stdout line is the matching response, so
nothing else may write to stdout. Logs go to stderr.

    request-rules-rpc [--debug] [--config PATH]

    > {"jsonrpc":"2.0","id":1,"method":"validate","params":{"ruleset_name":"search","query":{"q":"shoes"}}}
    < {"jsonrpc":"2.0","id":1,"result":{"valid":true,"errors":{},"query":{"q":"shoes","page":1},"body":{}}}

Validation failures are ordinary results. Only a service configured with
raise_on_errors answers them with an error object (code -32001) whose
data member is the error report.
"""

import sys
import json
import signal
import logging
import argparse
from typing import Any, Dict, Optional

from request_rules import ValidationService
from request_rules.errors import RulesetViolation

logger = logging.getLogger(__name__)


class ValidationJsonRpcServer:
    """Dispatches JSON-RPC calls onto a ValidationService."""

    ERROR_PARSE = -32700
    ERROR_INVALID_REQUEST = -32600
    ERROR_METHOD_NOT_FOUND = -32601
    ERROR_INVALID_PARAMS = -32602
    ERROR_INTERNAL = -32000
    ERROR_VALIDATION = -32001

    def __init__(self, debug: bool = False, config_path: Optional[str] = None):
        """
        Args:
            debug: Trace every request and response on stderr
            config_path: local-config.yaml to load instead of the bundled one
        """
        self.service = ValidationService(config_path)
        self.running = False
        self.debug = debug

        self.methods = {
            'validate': self._handle_validate,
            'discover_rulesets': self._handle_discover_rulesets,
            'reload_rulesets': self._handle_reload_rulesets,
            'get_config_age': self._handle_get_config_age,
        }

    def _trace(self, message: str):
        if self.debug:
            sys.stderr.write(f"[rpc] {message}\n")
            sys.stderr.flush()

    def start_server(self):
        """Answer stdin lines until EOF, an interrupt or stop_server()."""
        self.running = True
        self._trace("listening on stdin")

        while self.running:
            try:
                line = sys.stdin.readline()
            except KeyboardInterrupt:
                break

            if not line:
                self._trace("stdin closed")
                break
            if not line.strip():
                continue

            self._trace(f"<- {line.strip()}")
            self._send_response(self.handle_request(line))

        self._trace("stopped")

    def stop_server(self):
        """Let the loop finish its current line and return."""
        self.running = False
        self._trace("stop requested")

    def handle_request(self, request_json: str) -> Dict[str, Any]:
        """
        Turn one request line into a response object.

        Never raises: every failure becomes a JSON-RPC error object.
        """
        request_id = None

        try:
            try:
                request = json.loads(request_json)
            except json.JSONDecodeError as e:
                return self._error_response(None, self.ERROR_PARSE,
                                            f"Parse error: {e}")

            if not isinstance(request, dict):
                return self._error_response(None, self.ERROR_INVALID_REQUEST,
                                            "Request must be a JSON object")

            if request.get("jsonrpc") != "2.0":
                return self._error_response(None, self.ERROR_INVALID_REQUEST,
                                            f"Invalid JSON-RPC version: {request.get('jsonrpc')}")

            request_id = request.get("id")
            method = request.get("method")
            params = request.get("params", {})

            if not method:
                return self._error_response(request_id, self.ERROR_INVALID_REQUEST,
                                            "Missing 'method' field")

            if method not in self.methods:
                return self._error_response(request_id, self.ERROR_METHOD_NOT_FOUND,
                                            f"Method not found: {method}")

            if not isinstance(params, dict):
                return self._error_response(request_id, self.ERROR_INVALID_PARAMS,
                                            f"Params must be an object, got {type(params).__name__}")

            return self._success_response(request_id, self.methods[method](params))

        except RulesetViolation as e:
            return self._error_response(request_id, self.ERROR_VALIDATION,
                                        str(e), data=e.report.to_dict())

        except ValueError as e:
            # Bad parameters or an unknown ruleset
            return self._error_response(request_id, self.ERROR_INVALID_PARAMS, str(e))

        except Exception as e:
            logger.exception("Request failed", extra={'request_id': request_id})
            return self._error_response(request_id, self.ERROR_INTERNAL,
                                        f"Internal error: {e}")

    # Methods

    def _handle_validate(self, params: Dict[str, Any]) -> Any:
        ruleset_name = params.get('ruleset_name')
        query = params.get('query', {})
        body = params.get('body', {})

        if not ruleset_name:
            raise ValueError("Missing required parameter: ruleset_name")
        for scope_name, values in (('query', query), ('body', body)):
            if not isinstance(values, dict):
                raise ValueError(f"Parameter '{scope_name}' must be an object")

        outcome = self.service.validate(ruleset_name, query=query, body=body)

        # Seeded defaults and coerced booleans only exist in these dicts
        outcome["query"] = query
        outcome["body"] = body
        return outcome

    def _handle_discover_rulesets(self, params: Dict[str, Any]) -> Any:
        return self.service.discover_rulesets()

    def _handle_reload_rulesets(self, params: Dict[str, Any]) -> Any:
        self.service.reload_rulesets()
        return {"status": "ok", "message": "Rulesets reloaded"}

    def _handle_get_config_age(self, params: Dict[str, Any]) -> Any:
        return {"config_age": self.service.get_config_age()}

    # Envelopes

    def _success_response(self, request_id: Any, result: Any) -> Dict[str, Any]:
        return {"jsonrpc": "2.0", "id": request_id, "result": result}

    def _error_response(self, request_id: Any, code: int, message: str,
                        data: Optional[Any] = None) -> Dict[str, Any]:
        error = {"code": code, "message": message}
        if data is not None:
            error["data"] = data
        return {"jsonrpc": "2.0", "id": request_id, "error": error}

    def _send_response(self, response: Dict[str, Any]):
        """Write one response line to stdout."""
        try:
            response_json = json.dumps(response)
        except (TypeError, ValueError) as e:
            # e.g. a YAML date default seeded into the echoed inputs
            logger.error("Response not JSON serializable: %s", e,
                         extra={'request_id': response.get("id")})
            response_json = json.dumps(self._error_response(
                response.get("id"), self.ERROR_INTERNAL,
                f"Internal error: response is not JSON serializable ({e})"))
        self._trace(f"-> {response_json}")
        sys.stdout.write(response_json + "\n")
        sys.stdout.flush()


def main():
    """Console entry point (request-rules-rpc)."""
    parser = argparse.ArgumentParser(
        description="Validate request inputs over JSON-RPC 2.0 on stdin/stdout",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="methods: validate, discover_rulesets, reload_rulesets, get_config_age",
    )
    parser.add_argument('--debug', action='store_true',
                        help='trace requests and responses on stderr')
    parser.add_argument('--config', default=None,
                        help='local-config.yaml to use (default: bundled)')

    args = parser.parse_args()

    logging.basicConfig(
        stream=sys.stderr,
        level=logging.DEBUG if args.debug else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    server = ValidationJsonRpcServer(debug=args.debug, config_path=args.config)

    def on_signal(sig, frame):
        server.stop_server()

    signal.signal(signal.SIGTERM, on_signal)
    signal.signal(signal.SIGINT, on_signal)

    server.start_server()


if __name__ == "__main__":
    main()
