"""
Parameter Standardization Utility
Handles consistent naming and mapping of soil and leaf analysis parameters
across spreadsheets, OCR text, LLM extraction and manual entry.
"""

import re
from typing import Dict, List, Any, Optional

# Spreadsheet label variants per canonical parameter, in match priority order
SPREADSHEET_PARAMETER_MAP = {
    'pH': ['ph', 'p.h', 'acidity', 'ph level', 'ph value', 'hydrogen', 'h+'],
    'N': ['nitrogen', 'n', 'n%', 'total nitrogen', 'total n', 'n content', 'nitrate', 'ammonia'],
    'P': ['phosphorus', 'p', 'p2o5', 'available phosphorus', 'phosphate', 'p content', 'soluble p'],
    'K': ['potassium', 'k', 'k2o', 'available potassium', 'potash', 'k content', 'exchangeable k'],
    'Ca': ['calcium', 'ca', 'cao', 'available calcium', 'ca content', 'exchangeable ca'],
    'Mg': ['magnesium', 'mg', 'mgo', 'available magnesium', 'mg content', 'exchangeable mg'],
    'S': ['sulfur', 's', 'sulphur', 'available sulfur', 's content', 'sulfate', 'so4'],
    'Fe': ['iron', 'fe', 'available iron', 'fe content', 'ferrous', 'ferric'],
    'Mn': ['manganese', 'mn', 'available manganese', 'mn content'],
    'Zn': ['zinc', 'zn', 'available zinc', 'zn content'],
    'Cu': ['copper', 'cu', 'available copper', 'cu content'],
    'B': ['boron', 'b', 'available boron', 'b content', 'boric acid'],
    'OC': ['organic matter', 'om', 'organic carbon', 'oc', 'humus'],
    'EC': ['electrical conductivity', 'ec', 'conductivity', 'salinity'],
    'CEC': ['cation exchange capacity', 'cec', 'exchange capacity'],
}

# Laboratory report spellings on top of the spreadsheet variants
LAB_REPORT_VARIATIONS = {
    'pH': ['soil ph', 'ph (water)', 'ph (h2o)', 'ph (kcl)', 'alkalinity'],
    'N': ['n (%)', 'n_%', 'nitrogen (%)', 'total n (%)', 'total nitrogen (%)', 'leaf n', 'leaf nitrogen'],
    'P': ['p (%)', 'p%', 'avail p (mg/kg)', 'available p', 'avail p', 'total p (mg/kg)', 'total p',
          'available p (mg/kg)', 'p (mg/kg)', 'leaf p', 'leaf phosphorus'],
    'K': ['k (%)', 'k%', 'exch. k (meq%)', 'exch k (meq%)', 'exch k', 'exch. k (cmol/kg)',
          'exch. k (meq/100 g)', 'exchangeable potassium', 'leaf k', 'leaf potassium'],
    'Ca': ['ca (%)', 'ca%', 'exch. ca (meq%)', 'exch ca (meq%)', 'exch ca', 'exch. ca (cmol/kg)',
           'exch. ca (meq/100 g)', 'exchangeable calcium', 'leaf ca', 'leaf calcium'],
    'Mg': ['mg (%)', 'mg%', 'exch. mg (meq%)', 'exch mg (meq%)', 'exch mg', 'exch. mg (cmol/kg)',
           'exch. mg (meq/100 g)', 'exchangeable magnesium', 'leaf mg', 'leaf magnesium'],
    'S': ['s (%)', 'leaf s'],
    'Fe': ['fe (ppm)', 'fe (mg/kg)'],
    'Mn': ['mn (ppm)', 'mn (mg/kg)'],
    'Zn': ['zn (mg/kg)', 'zn (ppm)', 'leaf zinc', 'leaf zn'],
    'Cu': ['cu (mg/kg)', 'cu (ppm)', 'leaf copper', 'leaf cu'],
    'B': ['b (mg/kg)', 'b (ppm)', 'leaf boron', 'leaf b'],
    'OC': ['org. c (%)', 'org c (%)', 'org. c', 'organic c', 'organic_carbon', 'organicmatter', 'c (%)'],
    'EC': ['ec (ds/m)', 'electricalconductivity'],
    'CEC': ['cec (meq%)', 'c.e.c', 'cec (cmol/kg)', 'cec (meq/100 g)', 'cationexchangecapacity'],
    'Cl': ['chloride', 'chlorine', 'cl', 'cl (%)'],
}

_NUMERIC_JUNK = re.compile(r'[%,\s$€£¥]')
_NON_NUMERIC = re.compile(r'[^\d.\-]')


def levenshtein_distance(str1: str, str2: str) -> int:
    """Classic edit distance between two strings"""
    previous = list(range(len(str1) + 1))
    for j in range(1, len(str2) + 1):
        current = [j] + [0] * len(str1)
        for i in range(1, len(str1) + 1):
            indicator = 0 if str1[i - 1] == str2[j - 1] else 1
            current[i] = min(current[i - 1] + 1, previous[i] + 1, previous[i - 1] + indicator)
        previous = current
    return previous[len(str1)]


def fuzzy_match(text: str, pattern: str, threshold: float = 0.8) -> bool:
    """True when the normalised edit similarity reaches the threshold"""
    max_length = max(len(text), len(pattern))
    if max_length == 0:
        return True
    similarity = 1 - (levenshtein_distance(text, pattern) / max_length)
    return similarity >= threshold


def parse_number(value: Any) -> Optional[float]:
    """Coerce a cell or form value to float, or None when it holds no number"""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        cleaned = _NON_NUMERIC.sub('', _NUMERIC_JUNK.sub('', value)).strip()
        if not cleaned:
            return None
        try:
            return float(cleaned)
        except ValueError:
            return None
    return None


class ParameterStandardizer:
    """Centralized parameter standardization for soil and leaf analysis data"""

    def __init__(self):
        self.PARAMETER_VARIATIONS: Dict[str, List[str]] = {}
        for standard in list(SPREADSHEET_PARAMETER_MAP) + ['Cl']:
            merged = [standard.lower()]
            for source in (SPREADSHEET_PARAMETER_MAP, LAB_REPORT_VARIATIONS):
                merged.extend(v for v in source.get(standard, []) if v not in merged)
            self.PARAMETER_VARIATIONS[standard] = merged

        # Create reverse mapping for quick lookup
        self.variation_to_standard = {}
        for standard, variations in self.PARAMETER_VARIATIONS.items():
            for variation in variations:
                self.variation_to_standard.setdefault(variation.lower(), standard)

    def standardize_parameter_name(self, param_name: str) -> Optional[str]:
        """
        Convert any parameter name variation to the standard format

        Args:
            param_name: The parameter name to standardize

        Returns:
            Standard parameter name or None if not found
        """
        if not param_name:
            return None

        clean_name = param_name.strip().lower()
        clean_name = re.sub(r'\s+', ' ', clean_name)

        if clean_name in self.variation_to_standard:
            return self.variation_to_standard[clean_name]

        # Partial matches only on variations long enough to be meaningful
        for variation, standard in self.variation_to_standard.items():
            if len(variation) < 3:
                continue
            if variation in clean_name or (len(clean_name) >= 3 and clean_name in variation):
                return standard

        return None

    def standardize_data_dict(self, data_dict: Dict[str, Any]) -> Dict[str, Any]:
        """
        Standardize all parameter names in a data dictionary

        Keys that are not parameters (sample_id, lab_no, ...) are kept as-is.
        """
        standardized = {}
        for key, value in data_dict.items():
            standard_key = self.standardize_parameter_name(key)
            standardized[standard_key or key] = value
        return standardized

    def standardize_samples_list(self, samples: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        return [self.standardize_data_dict(sample) for sample in samples]

    def to_numeric_values(self, values: Dict[str, Any]) -> Dict[str, float]:
        """Keep only entries whose value parses as a number"""
        numeric = {}
        for key, value in (values or {}).items():
            number = parse_number(value)
            if number is not None:
                numeric[key] = number
        return numeric

    def get_display_name_mapping(self) -> Dict[str, str]:
        return {
            'pH': 'pH',
            'N': 'Nitrogen',
            'P': 'Phosphorus',
            'K': 'Potassium',
            'Ca': 'Calcium',
            'Mg': 'Magnesium',
            'S': 'Sulfur',
            'Fe': 'Iron',
            'Mn': 'Manganese',
            'Zn': 'Zinc',
            'Cu': 'Copper',
            'B': 'Boron',
            'OC': 'Organic Carbon',
            'EC': 'Electrical Conductivity',
            'CEC': 'Cation Exchange Capacity',
            'Cl': 'Chlorine',
        }


# Global instance for easy import
parameter_standardizer = ParameterStandardizer()
