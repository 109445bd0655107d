"""
Deterministic agronomy calculations for oil palm soil and leaf samples:
nutrient balance, yield benchmarking, 5-year forecasts and sustainability notes.
"""

from typing import Any, Dict, List, Mapping, Optional

from utils.parameter_standardizer import parameter_standardizer

MALAYSIA_YIELD_BENCHMARK = 25.0  # tons/ha national average
REGIONAL_FACTOR = 0.95
TOP_DECILE_FACTOR = 1.4
BASELINE_GROWTH = 0.02
FORECAST_YEARS = 5

BUDGET_MULTIPLIERS = {'high': 1.2, 'medium': 1.0, 'low': 0.8}
YIELD_FOCUS_BONUS = 0.05

DEFAULT_SUSTAINABILITY = {
    'carbon_sequestration_potential': 'Moderate potential for carbon sequestration through improved soil management',
    'rspo_compliance': 'Practices align with RSPO principles for sustainable palm oil production',
    'environmental_impact': 'Balanced approach to minimize environmental impact while maintaining productivity',
}

# (lower, upper) critical bounds; None means unbounded
CRITICAL_THRESHOLDS = {
    'soil': {
        'pH': (4.5, 6.5),
        'N': (0.15, None),
        'P': (10, None),
        'K': (0.1, None),
    },
    'leaf': {
        'N': (2.5, 3.2),
        'P': (0.15, 0.25),
        'K': (1.0, 1.5),
    },
}

_CRITICAL_NAME_HINTS = [('phosph', 'P'), ('nitrogen', 'N'), ('potassium', 'K'), ('ph', 'pH')]


def _priority(priorities: Optional[Mapping[str, Any]], key: str, default: str) -> str:
    if not priorities:
        return default
    return priorities.get(key) or default


def calculate_nutrient_balance(values: Dict[str, Any], sample_type: str) -> Dict[str, Any]:
    """Nutrient ratios, imbalances, critical deficiencies and antagonisms

    Args:
        values: parameter name -> measured value (numbers or numeric strings)
        sample_type: 'soil' or 'leaf'
    """
    balance = {
        'ratios': {},
        'imbalances': [],
        'critical_deficiencies': [],
        'antagonisms': [],
    }
    v = parameter_standardizer.to_numeric_values(values)
    ratios = balance['ratios']

    if sample_type == 'leaf':
        if v.get('N') and v.get('P'):
            ratios['N:P'] = round(v['N'] / v['P'], 2)
            if v['N'] / v['P'] > 16:
                balance['imbalances'].append('High N:P ratio indicates P deficiency')
        if v.get('N') and v.get('K'):
            ratios['N:K'] = round(v['N'] / v['K'], 2)
            if v['N'] / v['K'] > 3:
                balance['imbalances'].append('High N:K ratio, reduce N or increase K')
        if v.get('K') and v.get('Mg'):
            ratios['K:Mg'] = round(v['K'] / v['Mg'], 2)
            if v['K'] / v['Mg'] > 4:
                balance['antagonisms'].append('K-Mg antagonism detected (ratio >4:1), Mg uptake inhibited')
        if v.get('Ca') and v.get('Mg'):
            ratios['Ca:Mg'] = round(v['Ca'] / v['Mg'], 2)
            if v['Ca'] / v['Mg'] > 5:
                balance['imbalances'].append('High Ca:Mg ratio may affect Mg availability')

        # Critical deficiency thresholds for Tenera palms
        if 'N' in v and v['N'] < 2.5:
            balance['critical_deficiencies'].append('Severe N deficiency (<2.5%)')
        if 'P' in v and v['P'] < 0.15:
            balance['critical_deficiencies'].append('Critical P deficiency (<0.15%)')
        if 'K' in v and v['K'] < 1.0:
            balance['critical_deficiencies'].append('K deficiency (<1.0%)')
        if 'Mg' in v and v['Mg'] < 0.25:
            balance['critical_deficiencies'].append('Mg deficiency (<0.25%)')

    elif sample_type == 'soil':
        if v.get('Ca') and v.get('Mg') and v.get('K'):
            total = v['Ca'] + v['Mg'] + v['K']
            ratios['Ca_saturation'] = round(v['Ca'] / total * 100, 2)
            ratios['Mg_saturation'] = round(v['Mg'] / total * 100, 2)
            ratios['K_saturation'] = round(v['K'] / total * 100, 2)

            # Ideal base saturation for oil palm in Malaysia
            if v['Ca'] / total * 100 < 60:
                balance['imbalances'].append('Low Ca base saturation (<60%)')
            if v['Mg'] / total * 100 < 15:
                balance['imbalances'].append('Low Mg base saturation (<15%)')
            if v['K'] / total * 100 < 3:
                balance['imbalances'].append('Low K base saturation (<3%)')

        if 'pH' in v:
            if v['pH'] < 5.0:
                balance['critical_deficiencies'].append('Severe soil acidity (pH <5.0) - Al toxicity risk')
                balance['antagonisms'].append('Low pH reduces P, Mo, Ca, Mg availability')
            elif v['pH'] > 6.5:
                balance['antagonisms'].append('High pH reduces Fe, Mn, Zn, B availability')

    return balance


def calculate_regional_benchmarking(historical_yield: Optional[List[float]] = None) -> Dict[str, Any]:
    """Compare average historical yield against the Malaysian benchmark"""
    benchmarking = {
        'current_yield_vs_benchmark': 'No historical yield data available for comparison',
        'potential_improvement': 'Provide historical yield data for accurate forecasting',
        'ranking_percentile': 50,
    }
    if not historical_yield:
        return benchmarking

    avg_yield = sum(historical_yield) / len(historical_yield)
    vs_national = (avg_yield / MALAYSIA_YIELD_BENCHMARK - 1) * 100

    if vs_national >= 20:
        label, percentile = f"Excellent: {vs_national:.1f}% above national average", 90
    elif vs_national >= 0:
        label, percentile = f"Good: {vs_national:.1f}% above national average", 70
    elif vs_national >= -20:
        label, percentile = f"Below average: {abs(vs_national):.1f}% below national average", 30
    else:
        label, percentile = f"Poor: {abs(vs_national):.1f}% below national average", 10

    improvement = MALAYSIA_YIELD_BENCHMARK * TOP_DECILE_FACTOR - avg_yield
    benchmarking.update({
        'current_yield_vs_benchmark': label,
        'ranking_percentile': percentile,
        'potential_improvement': f"Up to {improvement:.1f} tons/ha improvement possible",
    })
    return benchmarking


def generate_yield_forecasts(current_yield: float, priorities: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
    """Five-year yield projections for baseline, high, medium and low investment"""
    bonus = YIELD_FOCUS_BONUS if _priority(priorities, 'focus', 'balanced') == 'yield' else 0.0
    multiplier = BUDGET_MULTIPLIERS.get(_priority(priorities, 'budget', 'medium'), 1.0)

    baseline, high, medium, low = [], [], [], []
    for year in range(FORECAST_YEARS):
        baseline.append(round(current_yield * (1 + BASELINE_GROWTH) ** year, 1))

        high_factor = (0.05 if year < 2 else 0.08 if year < 4 else 0.04) + bonus
        medium_factor = (0.03 if year < 1 else 0.06) + bonus * 0.6
        low_factor = (0.02 if year < 2 else 0.04) + bonus * 0.3

        if year == 0:
            high.append(round(current_yield, 1))
            medium.append(round(current_yield, 1))
            low.append(round(current_yield, 1))
        else:
            high.append(round(high[-1] * (1 + high_factor * multiplier), 1))
            medium.append(round(medium[-1] * (1 + medium_factor * multiplier), 1))
            low.append(round(low[-1] * (1 + low_factor * multiplier), 1))

    return {
        'baseline': baseline,
        'high_investment': high,
        'medium_investment': medium,
        'low_investment': low,
        'benchmark_comparison': {
            'malaysia_average': MALAYSIA_YIELD_BENCHMARK,
            'regional_average': MALAYSIA_YIELD_BENCHMARK * REGIONAL_FACTOR,
            'potential_improvement': (
                f"Up to {max(high) - current_yield:.1f} tons/ha improvement possible with high investment"
            ),
        },
    }


def calculate_sustainability_metrics(values: Dict[str, Any], priorities: Optional[Mapping[str, Any]] = None) -> Dict[str, str]:
    metrics = dict(DEFAULT_SUSTAINABILITY)
    if _priority(priorities, 'focus', 'balanced') == 'sustainability':
        metrics['carbon_sequestration_potential'] = (
            'High potential for carbon sequestration through organic matter enhancement and cover cropping'
        )
        metrics['rspo_compliance'] = 'Full compliance with RSPO standards prioritized in all recommendations'

    numeric = parameter_standardizer.to_numeric_values(values)
    organic = numeric.get('OC') or numeric.get('organicMatter')
    if organic and organic < 2:
        metrics['environmental_impact'] = (
            'Low organic matter indicates potential for soil degradation - focus on organic amendments'
        )
    return metrics


def _critical_key(param: str) -> Optional[str]:
    if param in ('pH', 'N', 'P', 'K'):
        return param
    lower = param.lower()
    if lower in ('n', 'p', 'k'):
        return lower.upper()
    for hint, key in _CRITICAL_NAME_HINTS:
        if hint in lower:
            return key
    return None


def is_parameter_critical(param: str, value: Any, sample_type: str) -> bool:
    """True when a reading falls outside the critical bounds for its sample type"""
    key = _critical_key(param)
    bounds = CRITICAL_THRESHOLDS.get(sample_type, {}).get(key) if key else None
    if bounds is None or isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    lower, upper = bounds
    return (lower is not None and value < lower) or (upper is not None and value > upper)
