import firebase_admin
from firebase_admin import credentials, auth, firestore
from app.core.config import settings
import logging
import os

logger = logging.getLogger(__name__)


def init_firebase():
    """Initialize Firebase Admin SDK (auth token verification and analytics events)"""
    logger.info("init_firebase: Entry")

    try:
        if firebase_admin._apps:
            logger.info("init_firebase: Already initialized")
            return

        if not os.path.exists(settings.firebase_credentials_path):
            logger.warning(
                f"init_firebase: Credentials not found at {settings.firebase_credentials_path}, "
                "using application default credentials"
            )
            firebase_admin.initialize_app(options={'projectId': settings.firebase_project_id})
        else:
            cred = credentials.Certificate(settings.firebase_credentials_path)
            firebase_admin.initialize_app(cred, {
                'projectId': settings.firebase_project_id,
            })
        logger.info("init_firebase: Success")
    except Exception as e:
        logger.error(f"init_firebase: Failure - {e}")
        raise


def verify_firebase_token(token: str) -> dict:
    """Verify Firebase ID token issued to the drafting client and return the decoded claims"""
    logger.info("verify_firebase_token: Entry")

    try:
        decoded_token = auth.verify_id_token(token)
        logger.info(f"verify_firebase_token: Success - {decoded_token.get('uid')}")
        return decoded_token
    except Exception as e:
        logger.error(f"verify_firebase_token: Failure - {e}")
        raise


def get_firestore_client():
    """Get Firestore client instance"""
    return firestore.client()
