"""
Tests for configuration schemas and the XML configuration loader.
"""

import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import numpy as np
import pytest


class TestConfigSchema:
    """Test schema validation of configuration sections."""

    def test_defaults_filled(self):
        from freehand_calib.config import get_segmentation_config_schema

        config = get_segmentation_config_schema().validate({"ApproximateSpacingMmPerPixel": "0.1"})

        assert config["ApproximateSpacingMmPerPixel"] == pytest.approx(0.1)
        assert config["MaxCandidateDots"] == 12
        assert config["RegionOfInterest"] == ""

    def test_string_values_are_coerced(self):
        """XML attributes arrive as strings."""
        from freehand_calib.config import get_segmentation_config_schema

        config = get_segmentation_config_schema().validate({
            "ApproximateSpacingMmPerPixel": "0.2",
            "MinDotAreaPx": "6",
            "ThresholdImagePercent": "40",
        })

        assert config["MinDotAreaPx"] == 6
        assert isinstance(config["MinDotAreaPx"], int)
        assert config["ThresholdImagePercent"] == pytest.approx(40.0)

    def test_missing_required_key(self):
        from freehand_calib.config import get_segmentation_config_schema
        from freehand_calib.errors import InputError

        with pytest.raises(InputError, match="ApproximateSpacingMmPerPixel"):
            get_segmentation_config_schema().validate({}, section="Segmentation")

    def test_unknown_key(self):
        from freehand_calib.config import get_calibration_config_schema
        from freehand_calib.errors import InputError

        with pytest.raises(InputError, match="Unknown config keys"):
            get_calibration_config_schema().validate({"OptimisationMethod": "none"})

    def test_constraint_violation(self):
        from freehand_calib.config import get_calibration_config_schema
        from freehand_calib.errors import InputError

        with pytest.raises(InputError, match="OptimizationMethod"):
            get_calibration_config_schema().validate({"OptimizationMethod": "bundle"})

    def test_bad_number(self):
        from freehand_calib.config import get_calibration_config_schema
        from freehand_calib.errors import InputError

        with pytest.raises(InputError, match="MaxIterations"):
            get_calibration_config_schema().validate({"MaxIterations": "many"})


class TestConfigurationFile:
    """Test reading and writing configuration documents."""

    @pytest.fixture
    def config_path(self, tmp_path):
        from freehand_calib.simulation import generate_dataset

        # Only the configuration file is needed; keep the sweeps tiny.
        return generate_dataset(tmp_path, num_frames=1).configuration

    def test_load_written_configuration(self, config_path):
        from freehand_calib.config import load_configuration
        from freehand_calib.simulation import default_setup

        configuration = load_configuration(config_path)
        setup = default_setup()

        assert configuration.phantom.num_nwires == 2
        assert configuration.segmentation["ApproximateSpacingMmPerPixel"] == pytest.approx(0.2)
        assert configuration.calibration["OptimizationMethod"] == "point_to_line"
        assert len(configuration.content_hash) == 16

        repository = configuration.build_repository()
        np.testing.assert_allclose(
            repository.get_transform("Phantom", "Reference"),
            setup.phantom_to_reference,
            atol=1e-12,
        )
        for loaded, expected in zip(configuration.phantom.wires, setup.phantom.wires):
            np.testing.assert_allclose(loaded.end_point_back, expected.end_point_back)

    def test_missing_file(self, tmp_path):
        from freehand_calib.config import load_configuration
        from freehand_calib.errors import InputError

        with pytest.raises(InputError, match="not found"):
            load_configuration(tmp_path / "missing.xml")

    def test_malformed_xml(self, tmp_path):
        from freehand_calib.config import load_configuration
        from freehand_calib.errors import InputError

        path = tmp_path / "broken.xml"
        path.write_text("<CalibrationConfiguration><Segmentation")

        with pytest.raises(InputError, match="Failed to parse"):
            load_configuration(path)

    def test_missing_section(self, tmp_path):
        from freehand_calib.config import load_configuration
        from freehand_calib.errors import InputError

        path = tmp_path / "partial.xml"
        path.write_text(
            '<CalibrationConfiguration>'
            '<Segmentation ApproximateSpacingMmPerPixel="0.2"/>'
            '</CalibrationConfiguration>'
        )

        with pytest.raises(InputError, match="PhantomDefinition"):
            load_configuration(path)

    def test_nwire_needs_three_wires(self, tmp_path):
        from freehand_calib.config import load_configuration
        from freehand_calib.errors import InputError

        path = tmp_path / "two_wires.xml"
        path.write_text(
            '<CalibrationConfiguration>'
            '<CoordinateDefinitions/>'
            '<PhantomDefinition><NWire>'
            '<Wire Name="1:A" EndPointFront="0 0 0" EndPointBack="0 0 40"/>'
            '<Wire Name="1:B" EndPointFront="0 0 0" EndPointBack="30 0 40"/>'
            '</NWire></PhantomDefinition>'
            '<Segmentation ApproximateSpacingMmPerPixel="0.2"/>'
            '</CalibrationConfiguration>'
        )

        with pytest.raises(InputError, match="3 wires"):
            load_configuration(path)
