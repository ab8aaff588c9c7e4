import pandas as pd
import pytest

from spec_plotting.config import EngineConfig


class RecordingRenderer:
    """Renderer stand-in: writes a small marker file and remembers each call."""

    def __init__(self, fail_titles=()):
        self.calls = []
        self.fail_titles = set(fail_titles)

    def __call__(self, df, chart, output_path):
        self.calls.append((chart.title, len(df), output_path))
        if chart.title in self.fail_titles:
            raise RuntimeError(f"boom while drawing {chart.title}")
        with open(output_path, "w") as f:
            f.write(f"{chart.kind}:{len(df)}\n")
        return output_path


class MemoryLoader:
    """Loader stand-in serving in-memory frames by location, counting loads."""

    def __init__(self, frames):
        self.frames = dict(frames)
        self.loads = []

    def __call__(self, location):
        self.loads.append(location)
        if location not in self.frames:
            from spec_plotting.errors import LoadError

            raise LoadError(f"Failed to open CSV file: {location}", location)
        return self.frames[location]


@pytest.fixture
def sales_df():
    return pd.DataFrame(
        {
            "region": ["A", "B", "A", "C"],
            "sales": [10, 20, 20, 5],
            "units": [1.0, 2.0, 3.0, None],
        }
    )


@pytest.fixture
def daily_df():
    dates = pd.date_range("2024-01-01", "2024-01-08", freq="D")
    return pd.DataFrame(
        {
            "date": dates,
            "totalUsers": list(range(100, 100 + len(dates))),
            "source": ["google", "bing"] * 4,
            "medium": ["organic", "cpc"] * 4,
        }
    )


@pytest.fixture
def renderer():
    return RecordingRenderer()


@pytest.fixture
def threads_config(tmp_path):
    return EngineConfig(workers=2, backend="threads", output_dir=tmp_path / "out")
