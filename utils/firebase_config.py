import logging
from typing import Optional

import firebase_admin
from firebase_admin import credentials, firestore, storage
from google.cloud.firestore import FieldFilter

from utils.config_manager import get_secret_section

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# Collection names
COLLECTIONS = {
    'analysis_reports': 'analysis_reports',
    'reference_documents': 'reference_documents',
    'document_embeddings': 'document_embeddings',
    'prompt_templates': 'prompt_templates',
    'user_feedback': 'user_feedback',
    'analytics_events': 'analytics_events',
    'user_sessions': 'user_sessions',
    'daily_analytics': 'daily_analytics',
    'page_analytics': 'page_analytics',
    'feature_analytics': 'feature_analytics',
    'scientific_references': 'scientific_references',
    'analysis_modules': 'analysis_modules',
    'document_types': 'document_types',
    'reference_sources': 'reference_sources',
}

REQUIRED_CREDENTIAL_FIELDS = ['project_id', 'private_key', 'client_email']


def get_firebase_credentials() -> Optional[dict]:
    """Get Firebase service account credentials from Streamlit secrets

    Returns:
        dict: Firebase service account credentials or None
    """
    firebase_secrets = get_secret_section('firebase')
    if not firebase_secrets:
        logger.warning("No [firebase] section found in Streamlit secrets")
        return None

    firebase_config = {
        "type": firebase_secrets.get('firebase_type', 'service_account'),
        "project_id": firebase_secrets.get('project_id'),
        "private_key_id": firebase_secrets.get('firebase_private_key_id'),
        "private_key": (firebase_secrets.get('firebase_private_key') or '').replace('\\n', '\n'),
        "client_email": firebase_secrets.get('firebase_client_email'),
        "client_id": firebase_secrets.get('firebase_client_id'),
        "auth_uri": firebase_secrets.get('firebase_auth_uri', 'https://accounts.google.com/o/oauth2/auth'),
        "token_uri": firebase_secrets.get('firebase_token_uri', 'https://oauth2.googleapis.com/token'),
        "auth_provider_x509_cert_url": firebase_secrets.get(
            'firebase_auth_provider_x509_cert_url', 'https://www.googleapis.com/oauth2/v1/certs'),
        "client_x509_cert_url": firebase_secrets.get('firebase_client_x509_cert_url'),
        "universe_domain": firebase_secrets.get('firebase_universe_domain', 'googleapis.com'),
    }

    missing_fields = [f for f in REQUIRED_CREDENTIAL_FIELDS if not firebase_config.get(f)]
    if missing_fields:
        logger.error(f"Missing required Firebase credentials in secrets: {missing_fields}")
        return None
    return firebase_config


def _storage_bucket_name(firebase_creds: dict) -> Optional[str]:
    firebase_secrets = get_secret_section('firebase')
    bucket = firebase_secrets.get('firebase_storage_bucket') or firebase_secrets.get('storage_bucket')
    if not bucket and firebase_creds.get('project_id'):
        bucket = f"{firebase_creds['project_id']}.firebasestorage.app"
    return bucket


def initialize_firebase() -> bool:
    """Initialize Firebase Admin SDK

    Returns:
        bool: True if initialization successful, False otherwise
    """
    if firebase_admin._apps:
        return True

    firebase_creds = get_firebase_credentials()
    if not firebase_creds:
        return False

    try:
        cred = credentials.Certificate(firebase_creds)
        storage_bucket = _storage_bucket_name(firebase_creds)
        firebase_admin.initialize_app(cred, {
            'storageBucket': storage_bucket,
            'projectId': firebase_creds['project_id'],
        })
        logger.info(f"Firebase initialized with storage bucket: {storage_bucket}")
        return True
    except ValueError as e:
        # initialize_app raises ValueError when the default app already exists
        if 'already exists' in str(e).lower():
            return True
        logger.error(f"Firebase credential error: {e}")
        return False
    except Exception as e:
        logger.error(f"Failed to initialize Firebase ({type(e).__name__}): {e}")
        return False


def get_firestore_client():
    """Get Firestore client instance

    Returns:
        firestore.Client or None when Firebase is not configured
    """
    if not firebase_admin._apps and not initialize_firebase():
        return None
    try:
        return firestore.client()
    except Exception as e:
        logger.error(f"Failed to create Firestore client: {e}")
        return None


def get_storage_bucket():
    """Get Firebase Storage bucket instance, or None when unavailable"""
    if not firebase_admin._apps and not initialize_firebase():
        return None
    try:
        return storage.bucket()
    except Exception as e:
        logger.error(f"Failed to get Storage bucket: {e}")
        return None
