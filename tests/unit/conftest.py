"""Unit-specific fixtures (no real network, no real waiting)."""

import pytest

from schema_recommender.config.loader import Config, FetchConfig, RetryPolicy


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    """Sleep replacement that records requested delays."""

    def __init__(self):
        self.calls: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture()
def fetch_config() -> FetchConfig:
    """Direct request plus two relays, fast retries."""
    return FetchConfig(
        transports=[
            "{url}",
            "https://relay-one.test/raw?url={url}",
            "https://relay-two.test/fetch/{url}",
        ],
        retry_policy=RetryPolicy(max_attempts=2, backoff_seconds=0.01, max_backoff_seconds=0.05),
    )


@pytest.fixture()
def config() -> Config:
    return Config()


@pytest.fixture()
def recipe_text() -> str:
    return (
        "Simple Rice Recipe\n"
        "A quick weeknight side dish.\n"
        "Ingredients: 2 cups rice\n"
        "1 tbsp oil\n"
        "Method:\n"
        "1. Boil rice\n"
        "2. Add oil"
    )


@pytest.fixture()
def article_html() -> str:
    return """<!DOCTYPE html>
<html>
<head>
  <title>  Growing Tomatoes at Home </title>
  <script type="application/ld+json">{"@context": "https://schema.org", "@type": "WebSite", "name": "Garden"}</script>
  <script type="application/ld+json">{not valid json</script>
</head>
<body>
  <header><p>Site header</p></header>
  <nav aria-label="breadcrumb"><ol>
    <li><a href="/">Home</a></li>
    <li><a href="/guides/">Guides</a></li>
  </ol></nav>
  <div class="breadcrumb"><a href="/other">Other</a></div>
  <main>
    <h1>Growing Tomatoes at Home</h1>
    <div class="post-meta">Featured image by a photo agency</div>
    <p>Tomatoes    need   sun.</p>
    <p>Water them<br>every morning.</p>
    <img src="a.jpg" alt="logo">
    <img src="b.jpg" alt="Ripe heirloom tomatoes">
    <p>Read More »</p>
    <p>March 3, 2024 No Comments</p>
    <div class="comments"><p>Great post!</p></div>
    <form><input name="q"></form>
  </main>
  <footer><p>Copyright</p></footer>
</body>
</html>"""
