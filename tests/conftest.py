import pytest

from survey_tidy.config import InputSettings
from survey_tidy.schema import SurveySchema
from survey_tidy.services.pipeline import TidyPipeline


@pytest.fixture
def schema():
    return SurveySchema()


@pytest.fixture
def pipeline(schema):
    return TidyPipeline(schema, input_settings=InputSettings())
