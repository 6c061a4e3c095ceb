"""
TrainingPeaks Client Package
Browser-bridged authentication and a retrying JSON client for the
TrainingPeaks web APIs.

CLI Usage:
    python -m trainingpeaks <command> [options]

    Commands:
        login           Sign in through a headless browser
        logout          Forget the stored session
        whoami          Show the signed-in user
        workouts list   List workouts between --start and --end
        workouts get    Show one workout
        workouts delete Delete one workout
"""

from .client import TrainingPeaksClient
from .config import ClientConfig
from .errors import (
    ApiError,
    AuthNoActiveSessionError,
    AuthenticationDataMissingError,
    BrowserLaunchError,
    ConfigurationError,
    ElementNotFoundError,
    HttpError,
    InvalidCredentialsError,
    NavigationTimeoutError,
    NetworkError,
    TrainingPeaksError,
    ValidationError,
    WebAuthenticationError,
)
from .http_client import HttpClient, HttpOutcome
from .models import AuthToken, Credentials, InterceptedCapture, Session, User
from .utils import RetryPolicy

__all__ = [
    'TrainingPeaksClient',
    'ClientConfig',
    'HttpClient',
    'HttpOutcome',
    'RetryPolicy',
    # Values
    'AuthToken',
    'Credentials',
    'InterceptedCapture',
    'Session',
    'User',
    # Errors
    'TrainingPeaksError',
    'ConfigurationError',
    'WebAuthenticationError',
    'BrowserLaunchError',
    'NavigationTimeoutError',
    'ElementNotFoundError',
    'InvalidCredentialsError',
    'AuthenticationDataMissingError',
    'ApiError',
    'NetworkError',
    'HttpError',
    'ValidationError',
    'AuthNoActiveSessionError',
]

__version__ = '1.0.0'
