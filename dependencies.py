from typing import Annotated, Optional

from aiohttp import ClientSession
from fastapi import Request, Depends

from models.user import Principal
from services.community import CommunityService
from services.errors import AuthRequired
from services.firestore import FirestoreDB
from services.identity import FirebaseVerifier, resolve_principal
from services.properties import PropertySearchService


async def get_session(request: Request) -> ClientSession:
    """Shared outbound HTTP session from app state"""
    return request.app.state.session


async def get_firestore(request: Request) -> FirestoreDB:
    """ Get Firestore DB from app state """
    return request.app.state.firestore


async def get_verifier(request: Request) -> FirebaseVerifier:
    return request.app.state.verifier


def get_optional_user(
        request: Request,
        verifier: Annotated[FirebaseVerifier, Depends(get_verifier)],
) -> Optional[Principal]:
    """Resolve the caller from the session cookie or bearer token, None when anonymous"""
    return resolve_principal(request, verifier)


async def get_current_user(
        principal: Annotated[Optional[Principal], Depends(get_optional_user)],
) -> Principal:
    """Same as get_optional_user but rejects anonymous callers with 401"""
    if principal is None:
        raise AuthRequired()
    return principal


async def get_community_service(
        db: Annotated[FirestoreDB, Depends(get_firestore)],
) -> CommunityService:
    """A service instance per request around the process-wide Firestore client"""
    return CommunityService(db)


async def get_property_search(
        db: Annotated[FirestoreDB, Depends(get_firestore)],
        session: Annotated[ClientSession, Depends(get_session)],
) -> PropertySearchService:
    return PropertySearchService(db, session)


# Type annotations for dependency injection
CurrentUser = Annotated[Principal, Depends(get_current_user)]
OptionalUser = Annotated[Optional[Principal], Depends(get_optional_user)]
Firestore = Annotated[FirestoreDB, Depends(get_firestore)]
Verifier = Annotated[FirebaseVerifier, Depends(get_verifier)]
Community = Annotated[CommunityService, Depends(get_community_service)]
PropertySearch = Annotated[PropertySearchService, Depends(get_property_search)]
