import sys
import json
import asyncio
import argparse
import logging
import webbrowser

from config import Settings, get_settings
from auth.token_store import TokenStore
from auth.navigator import LoginNavigator
from api_client import ApiClient
from errors import ApiError
from transport import AiohttpTransport

log = logging.getLogger(__name__)

_METHODS = ("GET", "POST", "PUT", "PATCH", "DELETE")


def _open_login(settings: Settings):
    def on_redirect(login_path: str):
        url = f"{settings.api_url.rstrip('/')}{login_path}"
        log.warning("Sign in again at %s", url)
        webbrowser.open(url)
    return on_redirect


def build_client(settings: Settings, auth: bool = True) -> ApiClient:
    token_store = TokenStore(settings.token_file, settings.refresh_url, settings.request_timeout)
    if auth and not token_store.is_authenticated:
        log.warning("No token stored in %s, the request will go out unauthenticated", settings.token_file)
    navigator = LoginNavigator(settings.login_path, on_redirect=_open_login(settings))
    return ApiClient(
        settings.api_url,
        token_store,
        transport=AiohttpTransport(settings.request_timeout),
        navigator=navigator,
        wait_timeout=settings.refresh_wait_timeout,
        refresh_timeout=settings.refresh_timeout,
    )


async def run(client: ApiClient, method: str, endpoint: str, body=None, auth=True) -> dict:
    async with client:
        call = getattr(client, method.lower())
        if method == "GET":
            return await call(endpoint, auth=auth)
        return await call(endpoint, body, auth=auth)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Call the API with the stored bearer token.")
    parser.add_argument("method", type=str.upper, choices=_METHODS)
    parser.add_argument("endpoint", help="Path under the API base URL, e.g. /items")
    parser.add_argument("--data", type=json.loads, default=None, help="JSON request body")
    parser.add_argument("--no-auth", action="store_true", help="Send without the bearer token")
    parser.add_argument("-v", "--verbose", action="store_true")
    args = parser.parse_args(argv)
    if args.method == "GET" and args.data is not None:
        parser.error("--data is not allowed with GET")
    return args


def main(argv=None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    )
    client = build_client(get_settings(), auth=not args.no_auth)
    try:
        result = asyncio.run(run(client, args.method, args.endpoint, args.data, not args.no_auth))
    except ApiError as e:
        print(f"{e.code} ({e.status}): {e.message}", file=sys.stderr)
        return 1
    print(json.dumps(result, ensure_ascii=False, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
