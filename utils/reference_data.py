"""
Reference Data for Oil Palm Soil and Leaf Analysis
Optimal ranges, units and short interpretations per parameter.
"""

from dataclasses import dataclass, asdict
from typing import Dict, Any, Tuple, Optional


@dataclass(frozen=True)
class ReferenceDataItem:
    """Optimal range for one parameter"""
    optimal: Tuple[float, float]
    unit: str
    interpretation: str

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['optimal'] = list(self.optimal)
        return data


SOIL_REFERENCE = {
    "pH": ReferenceDataItem((5.5, 6.5), "", "pH affects nutrient availability"),
    "N": ReferenceDataItem((0.2, 0.3), "%", "Nitrogen is essential for vegetative growth"),
    "P": ReferenceDataItem((15, 20), "ppm", "Phosphorus is important for root development and fruit production"),
    "K": ReferenceDataItem((0.3, 0.5), "cmol/kg", "Potassium helps in drought resistance and disease resistance"),
    "Mg": ReferenceDataItem((0.3, 0.4), "cmol/kg", "Magnesium is essential for chlorophyll production"),
    "Ca": ReferenceDataItem((2, 5), "cmol/kg", "Calcium is important for cell wall development"),
    "CEC": ReferenceDataItem((12, 25), "cmol/kg", "Cation Exchange Capacity affects nutrient retention"),
    "OC": ReferenceDataItem((2, 5), "%", "Organic Carbon is important for soil health"),
    "Zn": ReferenceDataItem((1, 3), "ppm", "Zinc is a micronutrient essential for enzyme activities"),
    "Cu": ReferenceDataItem((0.2, 0.8), "ppm", "Copper is essential for photosynthesis"),
    "B": ReferenceDataItem((0.5, 1), "ppm", "Boron is important for cell division"),
    "Fe": ReferenceDataItem((50, 250), "ppm", "Iron is essential for chlorophyll formation"),
    "Mn": ReferenceDataItem((20, 40), "ppm", "Manganese activates enzymes involved in photosynthesis"),
    "S": ReferenceDataItem((0.1, 0.2), "%", "Sulfur is a component of amino acids"),
    "Cl": ReferenceDataItem((0.1, 0.2), "%", "Chlorine aids in photosynthesis"),
}

LEAF_REFERENCE = {
    "N": ReferenceDataItem((2.6, 2.9), "%", "Nitrogen is essential for vegetative growth"),
    "P": ReferenceDataItem((0.16, 0.19), "%", "Phosphorus is important for root development"),
    "K": ReferenceDataItem((1.0, 1.3), "%", "Potassium helps in drought and disease resistance"),
    "Mg": ReferenceDataItem((0.3, 0.45), "%", "Magnesium is essential for chlorophyll"),
    "Ca": ReferenceDataItem((0.5, 0.7), "%", "Calcium is important for cell wall development"),
    "S": ReferenceDataItem((0.25, 0.4), "%", "Sulfur is a component of amino acids"),
    "Cl": ReferenceDataItem((0.5, 0.7), "%", "Chlorine aids in photosynthesis"),
    "B": ReferenceDataItem((15, 25), "ppm", "Boron is important for cell division"),
    "Cu": ReferenceDataItem((5, 8), "ppm", "Copper is essential for photosynthesis"),
    "Zn": ReferenceDataItem((15, 20), "ppm", "Zinc is essential for enzyme activities"),
    "Mn": ReferenceDataItem((100, 200), "ppm", "Manganese activates enzymes in photosynthesis"),
    "Fe": ReferenceDataItem((60, 200), "ppm", "Iron is essential for chlorophyll formation"),
    "pH": ReferenceDataItem((5.5, 6.5), "", "pH affects nutrient availability"),
    "CEC": ReferenceDataItem((12, 25), "cmol/kg", "Cation Exchange Capacity affects nutrient retention"),
    "OC": ReferenceDataItem((2, 5), "%", "Organic Carbon is important for soil health"),
}

# Parameters flagged as critical on the admin standards view
CRITICAL_PARAMETERS = {
    'soil': {'pH', 'N', 'P', 'K', 'OC', 'CEC'},
    'leaf': {'N', 'P', 'K', 'Mg', 'B'},
}

VALID_SAMPLE_TYPES = ('soil', 'leaf')


def get_reference_data(sample_type: str) -> Dict[str, ReferenceDataItem]:
    """Return optimal ranges and interpretations for a sample type

    Args:
        sample_type: 'soil' or 'leaf'

    Returns:
        Mapping of canonical parameter name to its reference item
    """
    if sample_type not in VALID_SAMPLE_TYPES:
        raise ValueError(f"Unknown sample type: {sample_type}")
    source = SOIL_REFERENCE if sample_type == 'soil' else LEAF_REFERENCE
    return dict(source)


def reference_data_as_dict(sample_type: str) -> Dict[str, Dict[str, Any]]:
    """JSON-serialisable reference data, used when building prompts"""
    return {name: item.to_dict() for name, item in get_reference_data(sample_type).items()}


def classify_value(value: float, item: ReferenceDataItem) -> str:
    low, high = item.optimal
    if value < low:
        return 'Deficient'
    if value > high:
        return 'Excess'
    return 'Optimal'


def _deviation_percent(value: float, item: ReferenceDataItem) -> float:
    low, high = item.optimal
    if value < low and low:
        return round((value - low) / low * 100, 1)
    if value > high and high:
        return round((value - high) / high * 100, 1)
    return 0.0


def compare_with_reference(values: Dict[str, Any], sample_type: str) -> Dict[str, Dict[str, Any]]:
    """Compare measured values against the reference ranges

    Unknown parameters and values that are not numeric are skipped.
    """
    from utils.parameter_standardizer import parameter_standardizer

    reference = get_reference_data(sample_type)
    numeric = parameter_standardizer.to_numeric_values(values)
    comparison = {}
    for name, value in numeric.items():
        key = name if name in reference else parameter_standardizer.standardize_parameter_name(name)
        item: Optional[ReferenceDataItem] = reference.get(key) if key else None
        if item is None:
            continue
        comparison[key] = {
            'value': value,
            'optimal': list(item.optimal),
            'unit': item.unit,
            'status': classify_value(value, item),
            'deviation_percent': _deviation_percent(value, item),
        }
    return comparison
