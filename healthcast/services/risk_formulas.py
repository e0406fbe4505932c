"""
Rule-Based Disease Risk Engine
Scores weather readings against a fixed catalogue of weather-sensitive diseases.

Each formula adds weighted contributions for the conditions that hold, adds a
synergy bonus where several favourable conditions co-occur, and clamps the sum
to [0, 1]. The thresholds are heuristic policy values, kept as published.
"""

import math
from collections import OrderedDict
from typing import Dict, Iterable, List

from healthcast.models import DiseaseDefinition, DiseasePrediction, WeatherReading
from healthcast.utils.config import RISK_INCLUSION_THRESHOLD
from healthcast.utils.errors import InvalidFeatureError
from healthcast.utils.logger import get_logger

logger = get_logger(__name__)

NO_RISK_ADVISORY = 'Current weather conditions pose minimal health risks. Continue normal activities.'


def _clamp(risk: float) -> float:
    return max(0.0, min(risk, 1.0))


def _dengue_risk(w: WeatherReading) -> float:
    risk = 0.0
    if 25 <= w.temperature <= 30:
        risk += 0.35
    elif 20 <= w.temperature <= 35:
        risk += 0.20

    if w.humidity > 80:
        risk += 0.30
    elif w.humidity > 70:
        risk += 0.20

    if 5 <= w.rainfall <= 20:
        risk += 0.25
    elif w.rainfall > 20:
        risk += 0.15

    if w.wind_speed is not None and w.wind_speed < 15:
        risk += 0.10

    # Heat, moisture and standing water together
    if 25 <= w.temperature <= 30 and w.humidity > 75 and w.rainfall >= 5:
        risk += 0.15
    return _clamp(risk)


def _malaria_risk(w: WeatherReading) -> float:
    risk = 0.0
    if 20 <= w.temperature <= 30:
        risk += 0.35
    elif 18 <= w.temperature <= 32:
        risk += 0.20

    if 70 <= w.humidity <= 90:
        risk += 0.30
    elif w.humidity >= 60:
        risk += 0.20

    if 3 <= w.rainfall <= 15:
        risk += 0.25

    if w.wind_speed is not None and w.wind_speed < 10:
        risk += 0.10
    return _clamp(risk)


def _influenza_risk(w: WeatherReading) -> float:
    risk = 0.0
    if 5 <= w.temperature <= 15:
        risk += 0.40
    elif w.temperature < 20:
        risk += 0.25

    if 40 <= w.humidity <= 70:
        risk += 0.30
    elif w.humidity < 40:
        risk += 0.20

    if w.pressure is not None and w.pressure > 1020:
        risk += 0.10

    if w.temperature < 15 and 40 <= w.humidity <= 70:
        risk += 0.15
    return _clamp(risk)


def _typhoid_risk(w: WeatherReading) -> float:
    risk = 0.0
    if 25 <= w.temperature <= 35:
        risk += 0.35
    elif w.temperature >= 20:
        risk += 0.20

    if w.humidity > 70:
        risk += 0.25

    if w.rainfall > 10:
        risk += 0.30
    elif w.rainfall > 2:
        risk += 0.15

    # Flooding contaminates water supplies
    if w.rainfall > 15 and w.humidity > 75:
        risk += 0.20
    return _clamp(risk)


def _heat_stroke_risk(w: WeatherReading) -> float:
    risk = 0.0
    if w.temperature > 42:
        risk += 0.60
    elif w.temperature > 38:
        risk += 0.45
    elif w.temperature > 35:
        risk += 0.30

    if w.uv_index is not None:
        if w.uv_index > 10:
            risk += 0.20
        elif w.uv_index > 8:
            risk += 0.15

    if w.temperature > 35 and w.humidity > 70:
        risk += 0.20
    elif w.temperature > 35 and w.humidity < 30:
        risk += 0.10
    return _clamp(risk)


def _respiratory_risk(w: WeatherReading) -> float:
    risk = 0.0
    if w.temperature < 10:
        risk += 0.35
    elif w.temperature < 18:
        risk += 0.25

    if 60 <= w.humidity <= 80:
        risk += 0.30
    elif w.humidity >= 50:
        risk += 0.20

    if w.pressure is not None and w.pressure < 1000:
        risk += 0.15

    if w.temperature < 15 and w.humidity > 65 and w.rainfall > 1:
        risk += 0.15
    return _clamp(risk)


def _pneumonia_risk(w: WeatherReading) -> float:
    risk = 0.0
    if w.temperature < 5:
        risk += 0.40
    elif w.temperature < 15:
        risk += 0.30

    if w.humidity > 70 and w.temperature < 15:
        risk += 0.35
    elif w.humidity > 60:
        risk += 0.20

    if w.dew_point is not None and (w.temperature - w.dew_point) > 10 and w.temperature < 15:
        risk += 0.15
    return _clamp(risk)


def _allergic_rhinitis_risk(w: WeatherReading) -> float:
    risk = 0.0
    if 18 <= w.temperature <= 24:
        risk += 0.35
    elif 15 <= w.temperature <= 25:
        risk += 0.25

    if 45 <= w.humidity <= 65:
        risk += 0.30

    # Dry days keep pollen airborne
    if w.rainfall < 1:
        risk += 0.20

    if w.wind_speed is not None and 10 <= w.wind_speed <= 20:
        risk += 0.15
    return _clamp(risk)


def _asthma_risk(w: WeatherReading) -> float:
    risk = 0.0
    if w.temperature < 5 or w.temperature > 30:
        risk += 0.30
    elif w.temperature < 10 or w.temperature > 25:
        risk += 0.20

    if w.humidity > 85 or w.humidity < 25:
        risk += 0.30
    elif w.humidity > 75 or w.humidity < 35:
        risk += 0.20

    if w.wind_speed is not None and w.wind_speed > 25:
        risk += 0.20

    if w.pressure is not None and w.pressure < 1005:
        risk += 0.20
    return _clamp(risk)


def _dehydration_risk(w: WeatherReading) -> float:
    risk = 0.0
    if w.temperature > 38:
        risk += 0.45
    elif w.temperature > 35:
        risk += 0.35
    elif w.temperature > 32:
        risk += 0.25

    if w.humidity < 30 and w.temperature > 32:
        risk += 0.30
    elif w.humidity < 40 and w.temperature > 35:
        risk += 0.20

    if w.uv_index is not None and w.uv_index > 8:
        risk += 0.15

    if w.wind_speed is not None and w.wind_speed > 15 and w.temperature > 35:
        risk += 0.10
    return _clamp(risk)


def _gastroenteritis_risk(w: WeatherReading) -> float:
    risk = 0.0
    if 28 <= w.temperature <= 35:
        risk += 0.35
    elif 22 <= w.temperature <= 38:
        risk += 0.25

    if w.humidity > 75:
        risk += 0.30
    elif w.humidity > 60:
        risk += 0.20

    if w.rainfall > 10:
        risk += 0.25
    elif w.rainfall > 5:
        risk += 0.15

    if w.temperature >= 25 and w.humidity > 70 and w.rainfall > 5:
        risk += 0.15
    return _clamp(risk)


def _skin_infection_risk(w: WeatherReading) -> float:
    risk = 0.0
    if w.temperature > 30 and w.humidity > 80:
        risk += 0.45
    elif w.temperature > 25 and w.humidity > 70:
        risk += 0.35

    if w.dew_point is not None and w.dew_point > 20:
        risk += 0.25

    if 1 < w.rainfall < 5:
        risk += 0.15

    if w.wind_speed is not None and w.wind_speed < 5:
        risk += 0.10
    return _clamp(risk)


DISEASE_DEFINITIONS = (
    DiseaseDefinition(
        name='Dengue Fever',
        specialty='Infectious Disease',
        base_doctors_required=5,
        risk_formula=_dengue_risk,
        description='Mosquito-borne viral infection common in tropical regions',
        symptoms=('High fever (40°C/104°F)', 'Severe headache', 'Pain behind the eyes',
                  'Joint and muscle pain', 'Nausea and vomiting', 'Skin rash'),
        prevention_tips=('Use mosquito repellent', 'Wear protective clothing', 'Remove standing water',
                         'Use mosquito nets', 'Install window screens'),
    ),
    DiseaseDefinition(
        name='Malaria',
        specialty='Infectious Disease',
        base_doctors_required=6,
        risk_formula=_malaria_risk,
        description='Parasitic disease transmitted by Anopheles mosquitoes',
        symptoms=('Cyclical fever and chills', 'Sweating', 'Headache and muscle pain',
                  'Fatigue', 'Nausea and vomiting', 'Anemia'),
        prevention_tips=('Sleep under insecticide-treated nets', 'Take antimalarial medication',
                         'Use mosquito repellent', 'Wear long sleeves and pants',
                         'Eliminate standing water', 'Indoor residual spraying'),
    ),
    DiseaseDefinition(
        name='Influenza (Flu)',
        specialty='General Medicine',
        base_doctors_required=3,
        risk_formula=_influenza_risk,
        description='Viral infection affecting the respiratory system, common in cold weather',
        symptoms=('Fever and chills', 'Cough and sore throat', 'Runny or stuffy nose',
                  'Body aches', 'Fatigue', 'Headache'),
        prevention_tips=('Get annual flu vaccination', 'Wash hands frequently',
                         'Avoid close contact with sick people', 'Cover mouth when coughing',
                         'Stay home when sick', 'Boost immune system'),
    ),
    DiseaseDefinition(
        name='Typhoid Fever',
        specialty='Infectious Disease',
        base_doctors_required=4,
        risk_formula=_typhoid_risk,
        description='Bacterial infection from contaminated water, common after flooding',
        symptoms=('Prolonged high fever', 'Weakness and fatigue', 'Abdominal pain',
                  'Headache', 'Loss of appetite', 'Rose-colored spots on chest'),
        prevention_tips=('Drink boiled or bottled water', 'Wash hands with soap', 'Avoid street food',
                         'Get typhoid vaccination', 'Ensure proper sanitation', 'Cook food thoroughly'),
    ),
    DiseaseDefinition(
        name='Heat Stroke',
        specialty='Emergency Medicine',
        base_doctors_required=2,
        risk_formula=_heat_stroke_risk,
        description='Serious condition caused by prolonged exposure to high temperatures',
        symptoms=('Body temperature above 40°C (104°F)', 'Altered mental state', 'Hot, dry skin',
                  'Nausea and vomiting', 'Rapid heartbeat', 'Headache and dizziness'),
        prevention_tips=('Stay hydrated', 'Avoid outdoor activities during peak heat',
                         'Wear light, loose clothing', 'Use sunscreen',
                         'Take frequent breaks in shade', 'Check on vulnerable individuals'),
    ),
    DiseaseDefinition(
        name='Respiratory Infections',
        specialty='Pulmonology',
        base_doctors_required=4,
        risk_formula=_respiratory_risk,
        description='Various respiratory tract infections common in cold, damp conditions',
        symptoms=('Persistent cough', 'Shortness of breath', 'Chest pain or tightness',
                  'Wheezing', 'Fever', 'Fatigue'),
        prevention_tips=('Keep indoor air clean', 'Avoid smoking and pollutants', 'Stay warm and dry',
                         'Practice good hygiene', 'Boost immune system', 'Get vaccinated'),
    ),
    DiseaseDefinition(
        name='Pneumonia',
        specialty='Pulmonology',
        base_doctors_required=5,
        risk_formula=_pneumonia_risk,
        description='Lung infection causing inflammation, severe in cold/damp conditions',
        symptoms=('Chest pain when breathing', 'Confusion (in older adults)', 'Cough with phlegm',
                  'Fatigue', 'Fever and chills', 'Shortness of breath'),
        prevention_tips=('Get pneumonia vaccine', 'Practice good hygiene', "Don't smoke",
                         'Stay up to date on immunizations', 'Keep immune system strong',
                         'Avoid sick people'),
    ),
    DiseaseDefinition(
        name='Allergic Rhinitis',
        specialty='Allergy & Immunology',
        base_doctors_required=2,
        risk_formula=_allergic_rhinitis_risk,
        description='Allergic reaction causing nasal inflammation, common in spring/fall',
        symptoms=('Sneezing', 'Runny or stuffy nose', 'Itchy eyes, nose, or throat',
                  'Watery eyes', 'Postnasal drip', 'Cough'),
        prevention_tips=('Monitor pollen counts', 'Keep windows closed during high pollen days',
                         'Use air purifiers', 'Shower after outdoor activities', 'Take antihistamines',
                         'Avoid outdoor activities at peak pollen times'),
    ),
    DiseaseDefinition(
        name='Asthma Attacks',
        specialty='Pulmonology',
        base_doctors_required=3,
        risk_formula=_asthma_risk,
        description='Respiratory condition worsened by weather changes and air quality',
        symptoms=('Shortness of breath', 'Chest tightness', 'Wheezing',
                  'Coughing', 'Difficulty sleeping', 'Rapid breathing'),
        prevention_tips=('Use prescribed inhalers', 'Avoid triggers', 'Monitor air quality',
                         'Stay indoors during high pollution', 'Keep rescue inhaler nearby',
                         'Follow asthma action plan'),
    ),
    DiseaseDefinition(
        name='Dehydration & Heat Exhaustion',
        specialty='Emergency Medicine',
        base_doctors_required=3,
        risk_formula=_dehydration_risk,
        description='Condition caused by excessive fluid loss in hot weather',
        symptoms=('Excessive thirst', 'Dry mouth and skin', 'Fatigue and weakness',
                  'Dizziness', 'Decreased urination', 'Muscle cramps'),
        prevention_tips=('Drink plenty of fluids', 'Avoid alcohol and caffeine', 'Wear light clothing',
                         'Take breaks in cool areas', 'Avoid strenuous activity in heat',
                         'Monitor urine color'),
    ),
    DiseaseDefinition(
        name='Gastroenteritis',
        specialty='Gastroenterology',
        base_doctors_required=4,
        risk_formula=_gastroenteritis_risk,
        description='Stomach and intestinal inflammation, common in warm, humid conditions',
        symptoms=('Diarrhea', 'Nausea and vomiting', 'Abdominal cramps',
                  'Fever', 'Loss of appetite', 'Dehydration'),
        prevention_tips=('Wash hands thoroughly', 'Drink clean, boiled water', 'Avoid contaminated food',
                         'Practice food safety', 'Maintain hygiene', 'Cook food properly'),
    ),
    DiseaseDefinition(
        name='Skin Infections',
        specialty='Dermatology',
        base_doctors_required=2,
        risk_formula=_skin_infection_risk,
        description='Bacterial and fungal skin infections in hot, humid weather',
        symptoms=('Redness and inflammation', 'Itching and rash', 'Pus-filled lesions',
                  'Skin scaling', 'Pain or tenderness', 'Warmth in affected area'),
        prevention_tips=('Keep skin clean and dry', 'Wear breathable clothing', 'Shower after sweating',
                         'Use antifungal powder', 'Avoid sharing personal items', 'Treat cuts promptly'),
    ),
)

DISEASE_NAMES = tuple(d.name for d in DISEASE_DEFINITIONS)
_DEFINITIONS_BY_NAME = {d.name: d for d in DISEASE_DEFINITIONS}


def get_definition(name: str) -> DiseaseDefinition:
    try:
        return _DEFINITIONS_BY_NAME[name]
    except KeyError:
        raise InvalidFeatureError(f"Unknown disease: {name}")


def score(disease: str, weather: WeatherReading) -> float:
    """Risk score in [0, 1] for one disease under the given weather."""
    return get_definition(disease).risk_formula(weather)


def required_doctors(base_doctors_required: int, risk_level: float) -> int:
    return math.ceil(base_doctors_required * risk_level)


def score_all(weather: WeatherReading) -> Dict[str, float]:
    """Unfiltered risk score for every disease in catalogue order."""
    return OrderedDict((d.name, d.risk_formula(weather)) for d in DISEASE_DEFINITIONS)


def predict_diseases(weather: WeatherReading, inclusion_threshold: float = None) -> List[DiseasePrediction]:
    """
    Scores every disease and keeps the ones above the inclusion threshold.

    Args:
        weather: Current weather reading
        inclusion_threshold: Risk at or below which a disease is dropped
            (defaults to RISK_INCLUSION_THRESHOLD)

    Returns:
        DiseasePrediction list sorted by risk level, highest first
    """
    if inclusion_threshold is None:
        inclusion_threshold = RISK_INCLUSION_THRESHOLD

    predictions = []
    for disease in DISEASE_DEFINITIONS:
        risk_level = disease.risk_formula(weather)
        if risk_level <= inclusion_threshold:
            continue
        predictions.append(DiseasePrediction(
            disease=disease.name,
            risk_level=risk_level,
            required_doctors=required_doctors(disease.base_doctors_required, risk_level),
            specialty=disease.specialty,
            description=disease.description,
            symptoms=disease.symptoms,
            prevention=disease.prevention_tips,
        ))

    predictions.sort(key=lambda p: p.risk_level, reverse=True)
    logger.debug(f"{weather.city}: {len(predictions)} diseases above {inclusion_threshold:.2f} risk")
    return predictions


def get_risk_category(risk_level: float) -> str:
    if risk_level >= 0.8:
        return 'Critical'
    if risk_level >= 0.6:
        return 'High'
    if risk_level >= 0.4:
        return 'Medium'
    return 'Low'


def total_doctor_requirements(predictions: Iterable[DiseasePrediction]) -> int:
    return sum(p.required_doctors for p in predictions)


def group_by_specialty(predictions: Iterable[DiseasePrediction]) -> Dict[str, int]:
    """Doctors required per specialty, in order of first appearance."""
    specialties = OrderedDict()
    for p in predictions:
        specialties[p.specialty] = specialties.get(p.specialty, 0) + p.required_doctors
    return specialties


def generate_health_advisory(weather: WeatherReading, predictions: List[DiseasePrediction]) -> str:
    if not predictions:
        return NO_RISK_ADVISORY

    top = predictions[0]
    return ' '.join([
        f"Health Advisory for {weather.city}:",
        f"Elevated risk of {top.disease} ({top.risk_level * 100:.0f}% risk level).",
        f"Primary symptoms to watch: {', '.join(top.symptoms[:3])}.",
        f"Recommended action: {top.prevention[0]}",
    ])
