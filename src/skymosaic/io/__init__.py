"""Images and survey providers."""

from skymosaic.io.image import FitsImage, Image, write_fits
from skymosaic.io.survey import FitsSurvey, ImageSurvey, Survey, SurveyFinder

__all__ = [
    "FitsImage",
    "FitsSurvey",
    "Image",
    "ImageSurvey",
    "Survey",
    "SurveyFinder",
    "write_fits",
]
