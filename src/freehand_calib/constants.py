"""
Constants used throughout the freehand_calib package.

These values fix the persisted result schema and the comparison policy
and should not be modified unless working with a different result format.
"""

# Relative tolerance for error-statistic comparison against a baseline (5%)
ERROR_THRESHOLD: float = 0.05

# Float rounding allowance applied on top of ERROR_THRESHOLD so that a ratio
# computed as exactly 1 + ERROR_THRESHOLD is accepted
RATIO_EPSILON: float = 1e-9

# Persisted vector lengths
NUM_TRANSFORM_VALUES: int = 16
NUM_PRE_VALUES: int = 9
NUM_PLDE_VALUES: int = 3

# Wires per N-wire fiducial: two parallel side wires and one diagonal
WIRES_PER_NWIRE: int = 3
MIDDLE_WIRE_INDEX: int = 1

# Unknowns of the linear image-to-probe model: in-plane x axis, in-plane
# y axis and origin, three components each
NUM_FREE_PARAMETERS: int = 9

# Euler angle convention used for 6DOF parameters
# ZYX means: first rotate around Z, then Y, then X
EULER_CONVENTION: str = "ZYX"

# Default coordinate frame names
IMAGE_FRAME: str = "Image"
PROBE_FRAME: str = "Probe"
PHANTOM_FRAME: str = "Phantom"
REFERENCE_FRAME: str = "Reference"

# Log level below DEBUG, selected by --verbose 5
TRACE: int = 5

# Results file written by the validation driver: <timestamp> + suffix
RESULTS_FILE_SUFFIX: str = ".Calibration.results.xml"
TIMESTAMP_FORMAT: str = "%Y%m%d_%H%M%S"
