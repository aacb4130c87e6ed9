"""CLI entrypoint: run one workflow from a JSON request file."""

import argparse
import asyncio
import json
import logging
import os
import sys
import uuid
import warnings
from pathlib import Path

from offerflow.core.config import DEFAULT_MODEL, LLM_PROVIDER, PROVIDER_ENV_VARS, StageDefaults

# Suppress LiteLLM's direct prints (must be before import)
os.environ["LITELLM_LOG"] = "ERROR"

warnings.filterwarnings("ignore", message="Pydantic serializer warnings")
warnings.filterwarnings("ignore", message="Unclosed client session")
warnings.filterwarnings("ignore", category=ResourceWarning)

# Suppress noisy loggers (HTTP clients, LiteLLM internals)
for logger_name in ["httpx", "httpcore", "litellm", "LiteLLM", "aiohttp", "asyncio"]:
    logging.getLogger(logger_name).setLevel(logging.ERROR)

import litellm  # noqa: E402 - must be after logging config
from dotenv import load_dotenv  # noqa: E402

load_dotenv()

litellm.suppress_debug_info = True


def load_request(path: Path) -> tuple[dict, dict]:
    """Split a request file into (inputs, options) dicts.

    Expected shape::

        {
          "profile": {"domain": "Real Estate", "explicitCriteria": "...", "implicitContext": "..."},
          "domain": "...", "context": "...",
          "offers": [...],          # optional
          "options": {...}          # optional, WorkflowOptions keys
        }
    """
    with open(path, encoding="utf-8") as f:
        request = json.load(f)
    if not isinstance(request, dict):
        raise ValueError("Request file must contain a JSON object")
    options = request.pop("options", None) or {}
    return request, options


def apply_overrides(options: dict, args: argparse.Namespace) -> dict:
    """CLI flags win over the request file's options."""
    overrides = {
        "model": args.model,
        "provider": args.provider,
        "language": args.language,
        "analyzeLimit": args.limit,
        "organizationTemplate": args.organize,
        "groupBy": args.group_by,
        "stageTimeout": args.timeout,
    }
    merged = dict(options)
    merged.update({k: v for k, v in overrides.items() if v is not None})
    if args.organize:
        merged["enableOrganize"] = True
    if args.fetch:
        merged["enableFetch"] = True
    if args.no_analyze:
        merged["enableAnalyze"] = False
    return merged


async def run(args: argparse.Namespace) -> bool:
    """Run the workflow described by ``args`` and write the result.

    Returns:
        True if the workflow completed.
    """
    from offerflow.orchestrator import WorkflowOrchestrator
    from offerflow.pydantic_models import WorkflowInputs, WorkflowOptions

    request_path = Path(args.request)
    if not request_path.exists():
        print(f"Error: File not found: {request_path}", file=sys.stderr)
        return False

    try:
        raw_inputs, raw_options = load_request(request_path)
        inputs = WorkflowInputs.model_validate(raw_inputs)
        options = WorkflowOptions.model_validate(apply_overrides(raw_options, args))
    except Exception as e:
        print(f"Error: Invalid request: {e}", file=sys.stderr)
        return False

    if not args.api_key and not any(os.environ.get(v) for v in PROVIDER_ENV_VARS.get(options.provider, ())):
        env_vars = ", ".join(PROVIDER_ENV_VARS.get(options.provider, ())) or "a provider key"
        print(f"Warning: no --api-key given and {env_vars} not set", file=sys.stderr)

    orchestrator = WorkflowOrchestrator(verbose=args.verbose, log_dir=args.log_dir)
    result = await orchestrator.run(
        args.workflow_id or uuid.uuid4().hex,
        inputs,
        options,
        api_key=args.api_key,
    )

    payload = result.model_dump_json(by_alias=True, indent=2)
    if args.output:
        Path(args.output).write_text(payload, encoding="utf-8")
        print(f"[OUTPUT] {args.output}", file=sys.stderr)
    else:
        print(payload)

    if not result.success:
        print(f"[{result.state.value.upper()}] {result.error}", file=sys.stderr)
    return result.success


def main():
    parser = argparse.ArgumentParser(
        description="AI offer ranking workflow",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  offerflow request.json
  offerflow request.json --organize kanban --group-by score
  offerflow request.json --fetch --language fr -o result.json
        """,
    )
    parser.add_argument("request", help="Path to a JSON request file")
    parser.add_argument("-o", "--output", default=None, help="Write the result here instead of stdout")
    parser.add_argument("--workflow-id", default=None, help="Workflow id (default: random)")
    parser.add_argument("--model", default=None, help=f"Model for every stage (default: {DEFAULT_MODEL})")
    parser.add_argument("--provider", default=None, help=f"Provider for key resolution (default: {LLM_PROVIDER})")
    parser.add_argument("--api-key", default=None, help="Use this key instead of stored or shared keys")
    parser.add_argument("--fetch", action="store_true", help="Fetch offers even if the request has some")
    parser.add_argument("--no-analyze", action="store_true", help="Skip the analyze stage")
    parser.add_argument(
        "--organize",
        choices=["timeline", "grid", "kanban"],
        default=None,
        help="Organize the results with this template",
    )
    parser.add_argument(
        "--group-by",
        choices=["category", "price", "location", "score"],
        default=None,
        help="Grouping used by --organize (default: category)",
    )
    parser.add_argument(
        "--language",
        choices=list(StageDefaults.LANGUAGES),
        default=None,
        help="Language of justifications (default: en)",
    )
    parser.add_argument(
        "--limit",
        type=int,
        default=None,
        help=f"Number of top offers to return (default: {StageDefaults.ANALYZE_LIMIT})",
    )
    parser.add_argument("--timeout", type=float, default=None, help="Per-stage timeout in seconds")
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output with DEBUG level logging")
    parser.add_argument("--log-dir", default=None, help="Directory for per-workflow log files")

    args = parser.parse_args()
    ok = asyncio.run(run(args))
    sys.exit(0 if ok else 1)


if __name__ == "__main__":
    main()
