import argparse
import logging
import os
import sys
import traceback
from dataclasses import dataclass, asdict
from typing import Optional

from flask import Flask, request, jsonify

from clr_parser import (
    CLRParserWorkflow,
    GrammarError,
    GrammarSyntaxError,
    InvalidSymbolError,
    EmptyGrammarError,
)


@dataclass
class ServerConfig:
    """Configuration options for the CLR parser service."""
    host: str = "127.0.0.1"
    port: int = 5000
    debug: bool = False
    max_input_tokens: int = 10000
    max_states: int = 5000
    max_steps: int = 100000

    @classmethod
    def from_env(cls) -> 'ServerConfig':
        defaults = cls()
        return cls(
            host=os.environ.get("CLR_HOST", defaults.host),
            port=int(os.environ.get("CLR_PORT", defaults.port)),
            debug=os.environ.get("CLR_DEBUG", "").lower() in ("1", "true", "yes"),
            max_input_tokens=int(os.environ.get("CLR_MAX_INPUT_TOKENS", defaults.max_input_tokens)),
            max_states=int(os.environ.get("CLR_MAX_STATES", defaults.max_states)),
            max_steps=int(os.environ.get("CLR_MAX_STEPS", defaults.max_steps)),
        )


def grammar_error_type(error: GrammarError) -> str:
    if isinstance(error, GrammarSyntaxError):
        return "grammar_syntax_error"
    if isinstance(error, InvalidSymbolError):
        return "invalid_symbol"
    if isinstance(error, EmptyGrammarError):
        return "empty_grammar"
    return "grammar_error"


def grammar_error_response(error: GrammarError):
    print(f"--- Grammar Processing FAILED: {error.message} ---", file=sys.stderr)
    body = {
        "success": False,
        "error": error.message,
        "error_type": grammar_error_type(error),
    }
    if error.line_number:
        body["line_number"] = error.line_number
    return jsonify(body), 400


def invalid_body_response():
    return jsonify({
        "success": False,
        "error": "Request body must be a JSON object",
        "error_type": "invalid_body",
    }), 400


def system_error_response(error: Exception):
    print(f"--- UNEXPECTED Python Error: {error} ---", file=sys.stderr)
    traceback.print_exc(file=sys.stderr)
    return jsonify({
        "success": False,
        "error": f"Unexpected server error: {error}",
        "error_type": "system_error",
    }), 500


def create_app(config: Optional[ServerConfig] = None) -> Flask:
    app = Flask(__name__)
    config = config or ServerConfig.from_env()
    app.config.update({key.upper(): value for key, value in asdict(config).items()})

    def build_workflow(cfg_input: str):
        """Build the pipeline, or return an error response tuple."""
        workflow = CLRParserWorkflow(cfg_input, max_steps=app.config["MAX_STEPS"])
        states_count = len(workflow.automaton.states)
        if states_count > app.config["MAX_STATES"]:
            print(f"--- Automaton too large: {states_count} states ---", file=sys.stderr)
            return None, (jsonify({
                "success": False,
                "error": f"Automaton has {states_count} states, limit is {app.config['MAX_STATES']}",
                "error_type": "automaton_too_large",
            }), 422)
        return workflow, None

    @app.route('/health')
    def health():
        return jsonify({"status": "ok"})

    @app.route('/build-parse-table', methods=['POST'])
    def build_parse_table():
        """
        Build the CLR automaton and parse table for a grammar.

        Returns the grammar's productions, the automaton's nodes and edges,
        the ACTION/GOTO tables and any conflicts, ready for rendering.
        """
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            return invalid_body_response()
        cfg_input = data.get('grammar')

        if not isinstance(cfg_input, str) or not cfg_input:
            return jsonify({
                "success": False,
                "error": "No grammar provided",
                "error_type": "missing_grammar",
            }), 400

        try:
            print("--- Building Parse Table ---", file=sys.stderr)
            workflow, error_response = build_workflow(cfg_input)
            if error_response:
                return error_response

            description = workflow.describe()
            info = description['table_info']
            print("--- Parse Table Building SUCCEEDED ---", file=sys.stderr)
            print(f"States created: {info['states_count']}", file=sys.stderr)
            print(f"Action entries: {info['action_entries']}", file=sys.stderr)
            print(f"Goto entries: {info['goto_entries']}", file=sys.stderr)
            if description['conflicts']:
                print(f"Conflicts detected: {len(description['conflicts'])}", file=sys.stderr)

            return jsonify({"success": True, **description})

        except GrammarError as e:
            return grammar_error_response(e)
        except Exception as e:
            return system_error_response(e)

    @app.route('/validate-string', methods=['POST'])
    def validate_string():
        """
        Run a whitespace-separated token string against a grammar's table.

        A rejected string is a normal result: the response is 200 with
        `accepted` false and the trace up to the failing step.
        """
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            return invalid_body_response()
        cfg_input = data.get('grammar')
        string_input = data.get('input')

        if not isinstance(cfg_input, str) or not cfg_input:
            return jsonify({
                "success": False,
                "error": "No grammar provided",
                "error_type": "missing_grammar",
            }), 400
        if string_input is None:
            return jsonify({
                "success": False,
                "error": "No input string provided",
                "error_type": "missing_input",
            }), 400
        if not isinstance(string_input, str):
            return jsonify({
                "success": False,
                "error": "Input must be a string of space-separated tokens",
                "error_type": "invalid_input",
            }), 400

        token_count = len(string_input.split())
        if token_count > app.config["MAX_INPUT_TOKENS"]:
            return jsonify({
                "success": False,
                "error": f"Input has {token_count} tokens, limit is {app.config['MAX_INPUT_TOKENS']}",
                "error_type": "input_too_large",
            }), 413

        try:
            workflow, error_response = build_workflow(cfg_input)
            if error_response:
                return error_response

            print(f"--- Parsing Input String: '{string_input}' ---", file=sys.stderr)
            result = workflow.validate(string_input)
            if result['accepted']:
                print("--- Parsing SUCCEEDED ---", file=sys.stderr)
            else:
                print(f"--- Parsing REJECTED: {result['error_message']} ---", file=sys.stderr)

            return jsonify({"success": True, **result})

        except GrammarError as e:
            return grammar_error_response(e)
        except Exception as e:
            return system_error_response(e)

    return app


def main(argv=None):
    parser = argparse.ArgumentParser(description="CLR(1) parser generator service")
    parser.add_argument("--host", help="interface to bind (default: $CLR_HOST or 127.0.0.1)")
    parser.add_argument("--port", type=int, help="port to listen on (default: $CLR_PORT or 5000)")
    parser.add_argument("--debug", action="store_true", help="enable Flask debug mode")
    args = parser.parse_args(argv)

    config = ServerConfig.from_env()
    if args.host:
        config.host = args.host
    if args.port:
        config.port = args.port
    if args.debug:
        config.debug = True

    logging.basicConfig(level=logging.DEBUG if config.debug else logging.INFO)

    print("--- CLR Parser Generator Server ---")
    print(f"Running on http://{config.host}:{config.port}")
    print("-" * 34)
    app = create_app(config)
    app.run(host=config.host, port=config.port, debug=config.debug, use_reloader=False)


if __name__ == '__main__':
    main()
