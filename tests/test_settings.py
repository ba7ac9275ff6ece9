"""Tests for loading the YAML settings file."""

import tempfile
from pathlib import Path

import pytest
import yaml

from wms_bodies.models.settings import load_settings
from wms_bodies.models.wms_config import WMSConfig


def write_settings(directory: Path, settings: dict) -> Path:
    path = directory / "settings.yaml"
    with open(path, "w") as f:
        yaml.dump(settings, f)
    return path


def base_settings():
    return {
        "bodies": {
            "Earth": {
                "texture": "textures/earth.png",
                "wms": [
                    {
                        "name": "Clouds",
                        "copyright": "NASA",
                        "url": "https://example.org/wms?SERVICE=WMS&REQUEST=GetMap",
                        "width": 1024,
                        "height": 512,
                        "time": "2020-01-01/2020-12-31/P1D",
                        "preFetch": 2,
                        "layers": "clouds,borders",
                    },
                    {
                        "name": "Relief",
                        "url": "https://example.org/wms?SERVICE=WMS&REQUEST=GetMap",
                        "width": 512,
                        "height": 256,
                        "layers": "relief",
                    },
                ],
            }
        }
    }


def test_load_settings():
    """Test loading a complete settings file."""
    with tempfile.TemporaryDirectory() as temp_dir:
        temp_path = Path(temp_dir)
        settings = load_settings(write_settings(temp_path, base_settings()))

        body = settings.body("Earth")
        assert body.texture == temp_path.resolve() / "textures" / "earth.png"
        assert settings.cache_dir == temp_path.resolve() / "map-cache"

        configs = body.wms_configs()
        assert configs[0] == WMSConfig(
            name="Clouds",
            copyright="NASA",
            url="https://example.org/wms?SERVICE=WMS&REQUEST=GetMap",
            width=1024,
            height=512,
            layers="clouds,borders",
            time="2020-01-01/2020-12-31/P1D",
            prefetch_count=2,
        )
        assert configs[0].request_template.endswith("&WIDTH=1024&HEIGHT=512&LAYERS=clouds,borders")
        assert configs[1].is_static
        assert configs[1].prefetch_radius == 0


def test_render_properties():
    """Test interpolation and time-span switches."""
    with tempfile.TemporaryDirectory() as temp_dir:
        data = base_settings()
        data["enable_interpolation"] = False
        data["enable_time_span"] = True
        settings = load_settings(write_settings(Path(temp_dir), data))

        properties = settings.render_properties()
        assert not properties.enable_interpolation
        assert properties.enable_time_span


def test_unquoted_date_time():
    """Test that YAML dates are read back as time strings."""
    with tempfile.TemporaryDirectory() as temp_dir:
        path = Path(temp_dir) / "settings.yaml"
        path.write_text(
            "bodies:\n"
            "  Moon:\n"
            "    texture: moon.png\n"
            "    wms:\n"
            "      - name: Eclipse\n"
            "        url: https://example.org/wms?\n"
            "        width: 16\n"
            "        height: 8\n"
            "        layers: shadow\n"
            "        time: 2020-06-15\n"
        )
        settings = load_settings(path)

        assert settings.body("Moon").wms[0].time == "2020-06-15"


def test_absolute_paths_are_kept():
    """Test that absolute texture paths are not rebased."""
    with tempfile.TemporaryDirectory() as temp_dir:
        data = base_settings()
        data["bodies"]["Earth"]["texture"] = "/data/earth.png"
        data["cache_dir"] = "/var/cache/wms"
        settings = load_settings(write_settings(Path(temp_dir), data))

        assert settings.body("Earth").texture == Path("/data/earth.png")
        assert settings.cache_dir == Path("/var/cache/wms")


@pytest.mark.parametrize(
    "mutate",
    [
        lambda d: d["bodies"]["Earth"]["wms"][0].update(width=0),
        lambda d: d["bodies"]["Earth"]["wms"][0].update(preFetch=-1),
        lambda d: d["bodies"]["Earth"]["wms"][0].pop("url"),
        lambda d: d["bodies"]["Earth"]["wms"][0].update(layers=""),
        lambda d: d["bodies"]["Earth"]["wms"][1].update(name="Clouds"),
        lambda d: d["bodies"]["Earth"].update(wms=[]),
        lambda d: d.update(bodies={}),
        lambda d: d.update(unknown_key=True),
    ],
)
def test_invalid_settings(mutate):
    """Test that invalid settings are rejected with ValueError."""
    with tempfile.TemporaryDirectory() as temp_dir:
        data = base_settings()
        mutate(data)

        with pytest.raises(ValueError):
            load_settings(write_settings(Path(temp_dir), data))


def test_missing_file():
    """Test that a missing settings file raises FileNotFoundError."""
    with pytest.raises(FileNotFoundError):
        load_settings("does-not-exist.yaml")


def test_unknown_body():
    """Test body lookup errors."""
    with tempfile.TemporaryDirectory() as temp_dir:
        settings = load_settings(write_settings(Path(temp_dir), base_settings()))

        with pytest.raises(ValueError, match="Unknown body"):
            settings.body("Mars")


def test_wms_config_dict_round_trip():
    """Test settings-key conversion of WMSConfig."""
    data = base_settings()["bodies"]["Earth"]["wms"][0]
    assert WMSConfig.from_dict(data).to_dict() == data
