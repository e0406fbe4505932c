import datetime as dt
from typing import Dict, List, Optional

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from healthcast.ml_models.registry import ModelRegistry
from healthcast.models import AdmissionRecord, WeatherReading
from healthcast.services import accuracy, risk_formulas
from healthcast.services.history_features import admission_summary, derive_feature_table
from healthcast.services.scenarios import AdmissionForecaster, DiseaseRiskForecaster, GovtDataValidator
from healthcast.services.synthetic_data import generate_admission_history
from healthcast.utils.errors import InvalidFeatureError, OperationResult, run_safely
from healthcast.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter()

# --- Initialize Services ---
registry = ModelRegistry()
admission_forecaster = AdmissionForecaster(registry)
disease_forecaster = DiseaseRiskForecaster(registry)
govt_validator = GovtDataValidator(registry)

STATUS_BY_KIND = {
    'ok': 200,
    'insufficient_data': 400,
    'invalid_feature': 422,
    'model_not_trained': 409,
    'not_found': 404,
    'training_failure': 500,
    'training_cancelled': 409,
}


def respond(result: OperationResult) -> JSONResponse:
    return JSONResponse(status_code=STATUS_BY_KIND.get(result.kind, 500), content=result.to_dict())


class WeatherRequest(BaseModel):
    city: str
    temperature: float
    humidity: float
    rainfall: float = 0.0
    wind_speed: Optional[float] = None
    uv_index: Optional[float] = None
    pressure: Optional[float] = None
    dew_point: Optional[float] = None
    weather_code: Optional[int] = None
    recorded_at: Optional[dt.datetime] = None

    def to_reading(self) -> WeatherReading:
        return WeatherReading(**self.model_dump(include=set(WeatherRequest.model_fields)))


class AdmissionRecordIn(BaseModel):
    date: dt.date
    total_admissions: int
    emergency_admissions: int = 0
    opd_admissions: int = 0
    scheduled_admissions: int = 0
    is_holiday: bool = False

    def to_record(self) -> AdmissionRecord:
        return AdmissionRecord(**self.model_dump())


class DiseaseTrainRequest(BaseModel):
    num_samples: Optional[int] = None
    epochs: Optional[int] = None
    persist: bool = False


class DiseasePredictRequest(WeatherRequest):
    compare_with_rules: bool = False


class AdmissionTrainRequest(BaseModel):
    records: List[AdmissionRecordIn] = []
    synthetic_days: Optional[int] = None
    epochs: Optional[int] = None
    batch_size: Optional[int] = None
    persist: bool = False


class AdmissionPredictRequest(BaseModel):
    features: Optional[Dict[str, float]] = None
    records: List[AdmissionRecordIn] = []
    days_ahead: int = 1
    start_date: Optional[dt.date] = None


class AdmissionFeaturesRequest(BaseModel):
    records: List[AdmissionRecordIn]


class ValidationRequest(BaseModel):
    action: str
    pincode: Optional[str] = None
    month: Optional[int] = None
    epochs: Optional[int] = None
    persist: bool = False


class CompareRequest(BaseModel):
    ground_truth: float
    ml_prediction: float
    rule_based_prediction: float
    tie_tolerance: Optional[float] = None


# --- Core Endpoints ---

@router.get("/health")
def health_check():
    return {"status": "ok", "service": "healthcast", "models": registry.status()}


@router.post("/diseases/rule-based")
def rule_based_diseases(request: WeatherRequest):
    """
    Rule-based disease risks, doctor requirements and advisory for a weather reading.
    """
    def _score():
        weather = request.to_reading()
        predictions = risk_formulas.predict_diseases(weather)
        return {
            "city": weather.city,
            "predictions": [
                dict(p.to_dict(), risk_category=risk_formulas.get_risk_category(p.risk_level))
                for p in predictions
            ],
            "total_doctors": risk_formulas.total_doctor_requirements(predictions),
            "doctors_by_specialty": risk_formulas.group_by_specialty(predictions),
            "advisory": risk_formulas.generate_health_advisory(weather, predictions),
        }
    return respond(run_safely(_score))


@router.post("/diseases/ml/train")
def train_disease_model(request: DiseaseTrainRequest):
    def _train():
        model = disease_forecaster.train(num_samples=request.num_samples, epochs=request.epochs)
        if request.persist:
            disease_forecaster.save()
        return {"metrics": model.metrics.to_dict(), "data_source": model.extras.get('data_source')}
    return respond(run_safely(_train))


@router.post("/diseases/ml/predict")
def predict_disease_ml(request: DiseasePredictRequest):
    def _predict():
        weather = request.to_reading()
        data = {"city": weather.city, "predictions": disease_forecaster.predict(weather)}
        if request.compare_with_rules:
            data["comparison"] = disease_forecaster.compare_with_rules(weather)
        return data
    return respond(run_safely(_predict))


@router.get("/diseases/ml/status")
def disease_model_status():
    return disease_forecaster.status()


@router.post("/admissions/train")
def train_admission_model(request: AdmissionTrainRequest):
    """
    Trains the admission model on posted records, or on a synthetic history
    when ``synthetic_days`` is given.
    """
    def _train():
        if request.synthetic_days:
            records = generate_admission_history(request.synthetic_days)
        else:
            records = [r.to_record() for r in request.records]
        model = admission_forecaster.train(records, epochs=request.epochs, batch_size=request.batch_size)
        if request.persist:
            admission_forecaster.save()
        return {"metrics": model.metrics.to_dict(), "summary": admission_summary(records)}
    return respond(run_safely(_train))


@router.post("/admissions/predict")
def predict_admissions(request: AdmissionPredictRequest):
    def _predict():
        if request.features is not None:
            forecasts = [admission_forecaster.predict(request.features, request.start_date)]
        elif request.records:
            records = [r.to_record() for r in request.records]
            forecasts = admission_forecaster.predict_next_days(records, request.days_ahead, request.start_date)
        else:
            raise InvalidFeatureError("Provide either features or historical records")
        return {"predictions": [f.to_dict() for f in forecasts]}
    return respond(run_safely(_predict))


@router.post("/admissions/features")
def admission_features(request: AdmissionFeaturesRequest):
    """
    Derived training features for a record history, with summary statistics.
    """
    def _features():
        records = [r.to_record() for r in request.records]
        table = derive_feature_table(records)
        table['date'] = table['date'].map(lambda d: d.isoformat())
        return {"features": table.to_dict(orient='records'), "stats": admission_summary(records)}
    return respond(run_safely(_features))


@router.post("/validation")
def validate_ml_model(request: ValidationRequest):
    """
    Government-data validation: action is "train", "validate" or "validate-all".
    """
    if request.action == 'train':
        def _train():
            model = govt_validator.train(epochs=request.epochs)
            if request.persist:
                govt_validator.save()
            return {
                "metrics": model.metrics.to_dict(),
                "model_accuracy_percent": model.extras.get('model_accuracy_percent'),
                "data_points": len(govt_validator.dataset),
            }
        return respond(run_safely(_train))

    if request.action == 'validate':
        if not request.pincode:
            return respond(OperationResult(False, 'invalid_feature', 'Pincode is required for validation'))
        return respond(run_safely(lambda: govt_validator.validate(request.pincode, request.month).to_dict()))

    if request.action == 'validate-all':
        return respond(run_safely(lambda: govt_validator.validate_all().to_dict()))

    return respond(OperationResult(
        False, 'invalid_feature', 'Invalid action. Use "train", "validate", or "validate-all"'))


@router.get("/validation")
def validation_status():
    return govt_validator.status()


@router.post("/accuracy/compare")
def compare_predictions(request: CompareRequest):
    return respond(run_safely(lambda: accuracy.compare(
        request.ground_truth, request.ml_prediction, request.rule_based_prediction, request.tie_tolerance,
    ).to_dict()))


def load_saved_models():
    """Loads persisted models for every scenario; absent artifacts are skipped."""
    for forecaster in (admission_forecaster, disease_forecaster, govt_validator):
        try:
            if forecaster.load():
                logger.info(f"Loaded saved '{forecaster.scenario}' model")
        except (OSError, ValueError, KeyError) as e:
            logger.error(f"Could not load saved '{forecaster.scenario}' model: {e}")
