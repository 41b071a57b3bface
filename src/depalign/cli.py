"""depalign command-line entry point.

    Returns:
        int: Exit code
"""

import json
import logging
import os
import sys

from .args import parse_args
from .common.logging_utils import configure_logging, extra_context, is_debug_enabled
from .constants import Constants, ExitCodes, _load_yaml_config, default_policy_settings
from .loader import RequestError, load_request, requested_configurations
from .resolution.models import ResolutionPolicy

logger = logging.getLogger(__name__)


def _setup_logging(args):
    """Configure logging based on CLI arguments."""
    # Honor CLI --loglevel by passing it to centralized logger via env
    if getattr(args, "LOG_LEVEL", None):
        os.environ[Constants.ENV_LOG_LEVEL] = str(args.LOG_LEVEL).upper()
    configure_logging()
    level_value = getattr(logging, str(getattr(args, "LOG_LEVEL", "INFO")).upper(), logging.INFO)
    logging.getLogger().setLevel(level_value)

    log_file = getattr(args, "LOG_FILE", None)
    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(logging.Formatter(Constants.LOG_FILE_FORMAT))
        logging.getLogger().addHandler(file_handler)
        logger.info("Logging to file: %s", log_file)


def build_policy(args):
    """Build the resolution policy: CLI flags > config file > defaults.

    Raises:
        OSError, ValueError: when an explicit config file cannot be read.
    """
    settings = default_policy_settings(_load_yaml_config(getattr(args, "CONFIG", None)))
    overrides = {
        "fail_on_version_conflict": getattr(args, "FAIL_ON_VERSION_CONFLICT", None),
        "fail_on_non_reproducible_resolution": getattr(args, "FAIL_ON_NON_REPRODUCIBLE", None),
        "max_workers": getattr(args, "MAX_WORKERS", None),
        "lookup_timeout": getattr(args, "LOOKUP_TIMEOUT", None),
    }
    settings.update({k: v for k, v in overrides.items() if v is not None})
    return ResolutionPolicy.from_mapping(settings)


def export_json(outcomes, path):
    """Exports the resolution outcomes to a JSON file.

    Args:
        outcomes (dict): Configuration name to ConfigurationOutcome.
        path (str): File path to export the JSON.
    """
    data = {"configurations": {name: outcome.to_dict() for name, outcome in outcomes.items()}}
    with open(path, "w", encoding="utf-8") as file:
        json.dump(data, file, indent=2, sort_keys=True)
    logging.info("JSON file saved successfully: %s", path)


def run_resolve(args):
    """Run the resolve command and return its exit code."""
    try:
        policy = build_policy(args)
        request = load_request(args.INPUT)
    except (OSError, RequestError, ValueError) as exc:
        logger.error("Cannot load input: %s", exc)
        return ExitCodes.FILE_ERROR.value

    service = request.create_service(policy)
    names = requested_configurations(args.CONFIGURATIONS, service)
    if is_debug_enabled(logger):
        logger.debug(
            "Resolving configurations",
            extra=extra_context(event="function_entry", component="cli", action="resolve", count=len(names)),
        )
    outcomes = service.resolve_all(request.declarations, names, policy)

    failed = [name for name, outcome in outcomes.items() if not outcome.succeeded]
    warned = [name for name, outcome in outcomes.items() if outcome.report is not None and outcome.report.warnings]
    for name in failed:
        for issue in outcomes[name].error.issues:
            logger.error("%s: %s", name, issue.describe())

    if args.OUTPUT:
        try:
            export_json(outcomes, args.OUTPUT)
        except OSError as exc:
            logger.error("Cannot write output: %s", exc)
            return ExitCodes.FILE_ERROR.value
    elif not args.QUIET:
        data = {"configurations": {name: outcome.to_dict() for name, outcome in outcomes.items()}}
        sys.stdout.write(json.dumps(data, indent=2, sort_keys=True) + "\n")

    if failed:
        return ExitCodes.RESOLUTION_FAILURE.value
    if warned and args.ERROR_ON_WARNINGS:
        logger.warning("Conflicts were auto-resolved in: %s", ", ".join(warned))
        return ExitCodes.EXIT_WARNINGS.value
    return ExitCodes.SUCCESS.value


def main(argv=None):
    """Main function of the program."""
    args = parse_args(argv)
    _setup_logging(args)
    if args.action == "resolve":
        sys.exit(run_resolve(args))
    sys.exit(ExitCodes.FILE_ERROR.value)
