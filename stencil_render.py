import logging
import sys
from pathlib import Path

import structlog
import yaml

from stencil.stencil_config import EngineConfig
from stencil.stencil_errors import TemplateError
from stencil.stencil_runtime import TemplateSet

USAGE = "usage: stencil_render.py TEMPLATE [CONTEXT.yaml] [--config ENGINE.yaml]"


def configure_logging(debug: bool = False):
    """Engine events go to stderr so they never mix with the rendered output."""
    structlog.configure(
        processors=[
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer(colors=False),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(logging.DEBUG if debug else logging.WARNING),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(sys.stderr),
    )


def load_context(path: str) -> dict:
    """Reads the YAML context file; an empty file is an empty context."""
    try:
        data = yaml.safe_load(Path(path).read_text(encoding="utf-8"))
    except FileNotFoundError:
        print(f"Error: file not found: {path}", file=sys.stderr)
        raise SystemExit(1)
    except yaml.YAMLError as e:
        print(f"Error: invalid YAML in {path}: {e}", file=sys.stderr)
        raise SystemExit(1)
    if data is None:
        return {}
    if not isinstance(data, dict):
        print(f"Error: context file {path} must contain a mapping", file=sys.stderr)
        raise SystemExit(1)
    return data


def render_file(template_path: str, context_path: str = None, config_path: str = None) -> str:
    """Render a template file and return the output, exiting with status 1 on errors."""
    p = Path(template_path)
    try:
        source = p.read_text(encoding="utf-8")
    except FileNotFoundError:
        print(f"Error: file not found: {template_path}", file=sys.stderr)
        raise SystemExit(1)

    context = load_context(context_path) if context_path else {}
    try:
        config = EngineConfig.from_yaml(Path(config_path)) if config_path else EngineConfig()
        configure_logging(config.debug)
        template_set = TemplateSet("cli", config=config)
        template = template_set.from_string(source, name=str(p))
        return template.execute(context)
    except TemplateError as e:
        # Pretty, location-aware message
        print(e.format_with_source(source), file=sys.stderr)
        raise SystemExit(1)


def main(argv=None):
    args = list(sys.argv[1:] if argv is None else argv)
    config_path = None
    if "--config" in args:
        i = args.index("--config")
        if i + 1 >= len(args):
            print(USAGE, file=sys.stderr)
            raise SystemExit(2)
        config_path = args[i + 1]
        del args[i:i + 2]

    if not args or len(args) > 2 or args[0].startswith("-"):
        print(USAGE, file=sys.stderr)
        raise SystemExit(2)

    output = render_file(args[0], args[1] if len(args) > 1 else None, config_path)
    sys.stdout.write(output)
    if not output.endswith("\n"):
        sys.stdout.write("\n")


if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        print("\nExiting.")
