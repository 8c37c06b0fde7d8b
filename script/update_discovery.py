#!/usr/bin/env python3
import json
import sys

from idpyoidc.configure import create_from_config_file
from idpyoidc.logging import configure_logging
from pygments import highlight
from pygments.formatters.terminal import TerminalFormatter
from pygments.lexers.data import JsonLexer

from vpnportal.configure import PortalConfiguration
from vpnportal.configure import make_discovery
from vpnportal.discovery import update_discovery

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    "root": {
        "handlers": ["console"],
        "level": "INFO"
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "stream": "ext://sys.stderr",
            "formatter": "default"},
    },
    "formatters": {
        "default": {
            "format": '%(asctime)s %(name)s:%(levelname)s %(message)s'}
    }
}

if __name__ == '__main__':
    import argparse

    parser = argparse.ArgumentParser()
    parser.add_argument('-c', "--config", required=True)
    parser.add_argument('-f', "--format", action='store_true')
    parser.add_argument('-l', "--logging", action='store_true')
    parser.add_argument(dest="source", nargs="*")
    args = parser.parse_args()

    config = create_from_config_file(PortalConfiguration, filename=args.config)
    if args.logging:
        configure_logging(config=config.logging or LOGGING)

    store, sources = make_discovery(config)
    if args.source:
        _unknown = [s for s in args.source if s not in sources]
        if _unknown:
            print(f"Unknown discovery source(s): {', '.join(_unknown)}", file=sys.stderr)
            sys.exit(2)
        sources = {k: v for k, v in sources.items() if k in args.source}

    updated, failed = update_discovery(sources, store, httpc_params=config.httpc_params)

    result = {name: {"seq": doc.seq, "entries": len(doc.identifiers())}
              for name, doc in updated.items()}
    for name, err in failed.items():
        result[name] = {"error": err.__class__.__name__, "error_description": str(err)}

    json_str = json.dumps(result, indent=2, sort_keys=True)
    if args.format:
        print(highlight(json_str, JsonLexer(), TerminalFormatter()))
    else:
        print(json_str)

    if failed:
        sys.exit(1)
