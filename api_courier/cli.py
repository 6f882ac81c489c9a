"""CLI entry point for api-courier.

Sends one request using a YAML client config and prints the response.
"""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import dataclass
from pathlib import Path

from api_courier.client import DEFAULT_CONTENT_TYPE, ApiClient, ClientError, ResponseStatusError
from api_courier.config_loader import ConfigError, load_client_config
from api_courier.models import ResponseEnvelope
from api_courier.request_builder import DEFAULT_ACCEPT, RequestBuilderError

DEFAULT_UPLOAD_CONTENT_TYPE = "application/octet-stream"
DEFAULT_FIELD_NAME = "file"


@dataclass
class GetArgs:
    """Parsed arguments for get mode."""

    config: Path
    verbose: bool
    endpoint: str
    query: str | None
    accept: str
    out: Path | None


@dataclass
class DeleteArgs:
    """Parsed arguments for delete mode."""

    config: Path
    verbose: bool
    endpoint: str


@dataclass
class WriteArgs:
    """Parsed arguments for post and put modes."""

    config: Path
    verbose: bool
    method: str
    endpoint: str
    data_file: Path
    content_type: str
    query: str | None


@dataclass
class UploadArgs:
    """Parsed arguments for upload mode."""

    config: Path
    verbose: bool
    endpoint: str
    file: Path
    content_type: str
    name: str
    filename: str | None


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with one subcommand per verb."""
    parser = argparse.ArgumentParser(
        prog="api-courier",
        description="Send a single signed, rate-limited request to an HTTP API.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        required=True,
        help="Path to client configuration file (YAML)",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        default=False,
        help="Log request diagnostics at DEBUG level",
    )

    subparsers = parser.add_subparsers(dest="command", required=True, help="HTTP verb")

    get_parser = subparsers.add_parser("get", help="GET an endpoint")
    get_parser.add_argument("endpoint", help="Endpoint path, e.g. /Contacts")
    get_parser.add_argument("--query", default=None, help="Raw, already-encoded query string")
    get_parser.add_argument(
        "--accept",
        default=DEFAULT_ACCEPT,
        help=f"Accept type (default: {DEFAULT_ACCEPT})",
    )
    get_parser.add_argument(
        "--out",
        type=Path,
        default=None,
        help="Write the raw response body to this file instead of stdout",
    )

    delete_parser = subparsers.add_parser("delete", help="DELETE an endpoint")
    delete_parser.add_argument("endpoint", help="Endpoint path")

    for verb in ("post", "put"):
        write_parser = subparsers.add_parser(verb, help=f"{verb.upper()} a file's contents")
        write_parser.add_argument("endpoint", help="Endpoint path")
        write_parser.add_argument(
            "--data-file",
            type=Path,
            required=True,
            dest="data_file",
            help="File whose contents form the request body",
        )
        write_parser.add_argument(
            "--content-type",
            default=DEFAULT_CONTENT_TYPE,
            dest="content_type",
            help=f"Request content type (default: {DEFAULT_CONTENT_TYPE})",
        )
        write_parser.add_argument("--query", default=None, help="Raw, already-encoded query string")

    upload_parser = subparsers.add_parser("upload", help="Upload a file as multipart/form-data")
    upload_parser.add_argument("endpoint", help="Endpoint path")
    upload_parser.add_argument("--file", type=Path, required=True, help="File to upload")
    upload_parser.add_argument(
        "--content-type",
        default=DEFAULT_UPLOAD_CONTENT_TYPE,
        dest="content_type",
        help=f"Content type of the file (default: {DEFAULT_UPLOAD_CONTENT_TYPE})",
    )
    upload_parser.add_argument(
        "--name",
        default=DEFAULT_FIELD_NAME,
        help=f"Form field name (default: {DEFAULT_FIELD_NAME})",
    )
    upload_parser.add_argument(
        "--filename",
        default=None,
        help="File name sent to the server (default: name of --file)",
    )

    return parser


def parse_args(args: list[str] | None = None) -> GetArgs | DeleteArgs | WriteArgs | UploadArgs:
    """Parse command-line arguments and return typed args dataclass.

    Raises:
        SystemExit: If arguments are invalid (argparse behavior).
    """
    parser = build_parser()
    namespace = parser.parse_args(args)

    if namespace.command == "get":
        return GetArgs(
            config=namespace.config,
            verbose=namespace.verbose,
            endpoint=namespace.endpoint,
            query=namespace.query,
            accept=namespace.accept,
            out=namespace.out,
        )
    elif namespace.command == "delete":
        return DeleteArgs(
            config=namespace.config,
            verbose=namespace.verbose,
            endpoint=namespace.endpoint,
        )
    elif namespace.command in ("post", "put"):
        return WriteArgs(
            config=namespace.config,
            verbose=namespace.verbose,
            method=namespace.command.upper(),
            endpoint=namespace.endpoint,
            data_file=namespace.data_file,
            content_type=namespace.content_type,
            query=namespace.query,
        )
    elif namespace.command == "upload":
        return UploadArgs(
            config=namespace.config,
            verbose=namespace.verbose,
            endpoint=namespace.endpoint,
            file=namespace.file,
            content_type=namespace.content_type,
            name=namespace.name,
            filename=namespace.filename,
        )
    else:
        # Should not happen with required=True on subparsers
        parser.error(f"Unknown command: {namespace.command}")


def _print_response(response: ResponseEnvelope, out: Path | None = None) -> int:
    print(f"HTTP {response.status_code}", file=sys.stderr)
    if out is not None:
        out.write_bytes(response.content)
        print(f"Wrote {len(response.content)} bytes to {out}", file=sys.stderr)
    elif response.body:
        print(response.body)
    return 0 if response.is_success else 1


def run_command(client: ApiClient, args: GetArgs | DeleteArgs | WriteArgs | UploadArgs) -> int:
    """Execute one parsed command with client and print the result."""
    if isinstance(args, GetArgs):
        if args.accept == DEFAULT_ACCEPT:
            response = client.get(args.endpoint, args.query)
        else:
            response = client.get_raw(args.endpoint, args.accept, args.query)
        return _print_response(response, args.out)

    if isinstance(args, DeleteArgs):
        return _print_response(client.delete(args.endpoint))

    if isinstance(args, WriteArgs):
        data = args.data_file.read_bytes()
        if args.method == "POST":
            response = client.post(args.endpoint, data, args.content_type, args.query)
        else:
            response = client.put(args.endpoint, data, args.content_type, args.query)
        return _print_response(response)

    payload = args.file.read_bytes()
    filename = args.filename or args.file.name
    try:
        response = client.post_multipart(args.endpoint, args.content_type, args.name, filename, payload)
    except ResponseStatusError as e:
        return _print_response(e.envelope)
    return _print_response(response)


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    try:
        parsed = parse_args(argv)

        logging.basicConfig(
            level=logging.DEBUG if parsed.verbose else logging.WARNING,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )

        try:
            config = load_client_config(parsed.config)
        except ConfigError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1

        with ApiClient.from_config(config) as client:
            try:
                return run_command(client, parsed)
            except (ClientError, RequestBuilderError, OSError) as e:
                print(f"Error: {e}", file=sys.stderr)
                return 1

    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
