from starlette.requests import Request

from app.services.request_meta import RequestMeta, parse_user_agent

CHROME_WINDOWS = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0 Safari/537.36"
)
EDGE_WINDOWS = CHROME_WINDOWS + " Edg/120.0"
SAFARI_IPHONE = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.0 Mobile/15E148 Safari/604.1"
)
FIREFOX_LINUX = "Mozilla/5.0 (X11; Linux x86_64; rv:121.0) Gecko/20100101 Firefox/121.0"
OPERA_WINDOWS = CHROME_WINDOWS + " OPR/106.0.0.0"
CHROME_OS = (
    "Mozilla/5.0 (X11; CrOS x86_64 14541.0.0) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
IPAD = (
    "Mozilla/5.0 (iPad; CPU OS 16_6 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/16.6 Mobile/15E148 Safari/604.1"
)


def test_parse_user_agent_variants():
    assert parse_user_agent(CHROME_WINDOWS) == {"browser": "Chrome", "os": "Windows", "device": "Desktop"}
    assert parse_user_agent(EDGE_WINDOWS)["browser"] == "Edge"
    assert parse_user_agent(SAFARI_IPHONE) == {"browser": "Mobile Safari", "os": "iOS", "device": "Mobile"}
    assert parse_user_agent(FIREFOX_LINUX) == {"browser": "Firefox", "os": "Linux", "device": "Desktop"}


def test_browsers_that_claim_to_be_chrome():
    assert parse_user_agent(OPERA_WINDOWS)["browser"] == "Opera"
    chromebook = parse_user_agent(CHROME_OS)
    assert chromebook["browser"] == "Chrome"
    assert chromebook["os"] == "Chrome OS"


def test_tablet_is_not_reported_as_mobile():
    assert parse_user_agent(IPAD)["device"] == "Tablet"


def test_parse_missing_user_agent():
    assert parse_user_agent(None) == {"browser": "Unknown", "os": "Unknown", "device": "Desktop"}


def test_from_request():
    request = Request({
        "type": "http",
        "method": "POST",
        "path": "/api/v1/auth/login",
        "headers": [(b"user-agent", FIREFOX_LINUX.encode()), (b"x-forwarded-for", b"198.51.100.4")],
        "client": ("127.0.0.1", 40000),
    })
    meta = RequestMeta.from_request(request)
    assert meta.ip_address == "198.51.100.4"
    assert meta.user_agent == FIREFOX_LINUX
    assert meta.device_info["os"] == "Linux"


def test_default_meta():
    meta = RequestMeta()
    assert meta.ip_address is None
    assert meta.device_info["browser"] == "Unknown"
