"""MongoDB implementation of UserRepository.

Every multi-field state change (reset redemption, provider unlink, lockout
counters) is a single conditional write so concurrent requests cannot
interleave half-applied updates.
"""

from dataclasses import asdict
from datetime import datetime, timezone
from logging import getLogger

from pymongo import ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError, PyMongoError

from adapter.mongodb import USERS_COLLECTION_NAME
from domain.model.errors import DomainError, DuplicateError, InvariantViolationError
from domain.model.oauth import PROVIDERS, OAuthLink
from domain.model.user import LOCAL_PROVIDER, User, normalize_email

logger = getLogger(__name__)


def _aware(value: datetime | None) -> datetime | None:
    """Mongo stores UTC; attach the tzinfo if the client handed back a naive value."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _version_filter(version: int):
    # documents written before versioning have no field at all
    return {'$in': [0, None]} if version == 0 else version


class MongoUserRepository:
    def __init__(self, db: Database):
        self.collection = db[USERS_COLLECTION_NAME]

    def ensure_indexes(self) -> bool:
        """Create indexes for users collection."""
        from adapter.mongodb.indexes import create_index_safe

        try:
            create_index_safe(self.collection, [('email', 1)], 'idx_users_email', unique=True)
            for provider in PROVIDERS:
                # partial: accounts without this provider must not collide on null
                create_index_safe(
                    self.collection,
                    [(f'oauth.{provider}.external_id', 1)],
                    f'idx_users_{provider}_id',
                    unique=True,
                    partialFilterExpression={f'oauth.{provider}.external_id': {'$type': 'string'}},
                )
            create_index_safe(
                self.collection,
                [('reset_password_token', 1)],
                'idx_users_reset_token',
                partialFilterExpression={'reset_password_token': {'$type': 'string'}},
            )
            create_index_safe(self.collection, [('created_at', -1)], 'idx_users_created_at')
            return True
        except PyMongoError as e:
            logger.error("Failed to create users indexes", extra={"error": str(e)})
            return False

    # ── mapping ──────────────────────────────────────────────

    def _to_doc(self, user: User) -> dict:
        doc = asdict(user)
        doc['_id'] = doc.pop('id')
        return doc

    def _to_domain(self, doc: dict) -> User:
        """Convert MongoDB document to User domain model."""
        oauth = {}
        for name, sub in (doc.get('oauth') or {}).items():
            if not isinstance(sub, dict) or not sub.get('external_id'):
                continue
            oauth[name] = OAuthLink(
                external_id=str(sub['external_id']),
                access_token=sub.get('access_token'),
                refresh_token=sub.get('refresh_token'),
                token_expiry=_aware(sub.get('token_expiry')),
                profile_url=sub.get('profile_url'),
                username=sub.get('username'),
                linked_at=_aware(sub.get('linked_at')),
                scopes=list(sub.get('scopes') or []),
            )

        return User(
            id=doc['_id'],
            first_name=doc.get('first_name', ''),
            last_name=doc.get('last_name', ''),
            email=doc['email'],
            created_at=_aware(doc['created_at']),
            updated_at=_aware(doc['updated_at']),
            password_hash=doc.get('password_hash'),
            failed_login_attempts=doc.get('failed_login_attempts', 0),
            is_locked=doc.get('is_locked', False),
            lock_until=_aware(doc.get('lock_until')),
            last_login=_aware(doc.get('last_login')),
            login_ip=doc.get('login_ip'),
            login_count=doc.get('login_count', 0),
            reset_password_token=doc.get('reset_password_token'),
            reset_password_expiry=_aware(doc.get('reset_password_expiry')),
            refresh_token_hash=doc.get('refresh_token_hash'),
            provider=doc.get('provider', LOCAL_PROVIDER),
            oauth=oauth,
            oauth_accounts_linked=list(doc.get('oauth_accounts_linked') or []),
            last_oauth_provider=doc.get('last_oauth_provider'),
            oauth_scopes=list(doc.get('oauth_scopes') or []),
            oauth_consent_date=_aware(doc.get('oauth_consent_date')),
            is_email_verified=doc.get('is_email_verified', False),
            email_verification_token=doc.get('email_verification_token'),
            email_verification_expiry=_aware(doc.get('email_verification_expiry')),
            two_factor_enabled=doc.get('two_factor_enabled', False),
            two_factor_secret=doc.get('two_factor_secret'),
            version=doc.get('version') or 0,
        )

    def _find_one(self, query: dict, context: dict) -> User | None:
        try:
            doc = self.collection.find_one(query)
            return self._to_domain(doc) if doc else None
        except PyMongoError as e:
            logger.error("Failed to read user", extra={**context, "error": str(e)})
            raise DomainError("Failed to read user") from e

    def _update(self, user_id: str, update: dict, action: str, extra_filter: dict | None = None) -> bool:
        # Every write bumps the version so copies read before it fail the save() filter.
        update = {**update, '$inc': {**update.get('$inc', {}), 'version': 1}}
        try:
            result = self.collection.update_one({'_id': user_id, **(extra_filter or {})}, update)
            return result.matched_count > 0
        except PyMongoError as e:
            logger.error(f"Failed to {action}", extra={"userId": user_id, "error": str(e)})
            return False

    # ── write operations ─────────────────────────────────────

    def create(self, user: User) -> User:
        """Insert a new user. Raise DuplicateError if the email is taken."""
        user.email = normalize_email(user.email)
        try:
            self.collection.insert_one(self._to_doc(user))
        except DuplicateKeyError:
            logger.warning("User creation failed: email already exists", extra={"email": user.email})
            raise DuplicateError("Email already registered")
        except PyMongoError as e:
            logger.error("Failed to create user", extra={"email": user.email, "error": str(e)})
            raise DomainError("Failed to create user")

        logger.info("User created", extra={"userId": user.id, "email": user.email})
        return user

    def save(self, user: User) -> bool:
        doc = self._to_doc(user)
        doc['version'] = user.version + 1
        try:
            result = self.collection.replace_one(
                {'_id': user.id, 'version': _version_filter(user.version)}, doc,
            )
        except DuplicateKeyError:
            # another account already holds this provider identity
            logger.warning("Provider identity already linked elsewhere", extra={"userId": user.id})
            raise InvariantViolationError("This provider account is already linked to another user")
        except PyMongoError as e:
            logger.error("Failed to save user", extra={"userId": user.id, "error": str(e)})
            return False

        if result.matched_count == 0:
            logger.warning("User save lost a concurrent update", extra={"userId": user.id})
            return False
        user.version += 1
        return True

    def update_login_tracking(self, user_id: str, ip: str | None, at: datetime) -> bool:
        return self._update(
            user_id,
            {'$set': {'last_login': at, 'login_ip': ip, 'updated_at': at}, '$inc': {'login_count': 1}},
            "update login tracking",
        )

    def set_refresh_token(self, user_id: str, token_hash: str) -> bool:
        return self._update(user_id, {'$set': {'refresh_token_hash': token_hash}}, "store refresh token")

    def clear_refresh_token(self, user_id: str) -> bool:
        return self._update(user_id, {'$set': {'refresh_token_hash': None}}, "clear refresh token")

    def set_reset_token(self, user_id: str, token_hash: str, expiry: datetime) -> bool:
        return self._update(
            user_id,
            {'$set': {'reset_password_token': token_hash, 'reset_password_expiry': expiry}},
            "store reset token",
        )

    def clear_reset_token(self, user_id: str, token_hash: str) -> bool:
        return self._update(
            user_id,
            {'$set': {'reset_password_token': None, 'reset_password_expiry': None}},
            "clear reset token",
            extra_filter={'reset_password_token': token_hash},
        )

    def consume_reset_token(self, token_hash: str, password_hash: str, now: datetime) -> User | None:
        try:
            doc = self.collection.find_one_and_update(
                {'reset_password_token': token_hash, 'reset_password_expiry': {'$gt': now}},
                {
                    '$set': {
                        'password_hash': password_hash,
                        'reset_password_token': None,
                        'reset_password_expiry': None,
                        'failed_login_attempts': 0,
                        'is_locked': False,
                        'lock_until': None,
                        'refresh_token_hash': None,
                        'updated_at': now,
                    },
                    '$inc': {'version': 1},
                },
                return_document=ReturnDocument.AFTER,
            )
        except PyMongoError as e:
            logger.error("Failed to consume reset token", extra={"error": str(e)})
            return None
        return self._to_domain(doc) if doc else None

    def unlink_provider(self, user_id: str, provider: str) -> User | None:
        others = [name for name in PROVIDERS if name != provider]
        # another login method must remain at the moment of the write
        remaining_method = [{'password_hash': {'$type': 'string', '$ne': ''}}]
        remaining_method += [{f'oauth.{name}.external_id': {'$type': 'string'}} for name in others]
        try:
            doc = self.collection.find_one_and_update(
                {
                    '_id': user_id,
                    f'oauth.{provider}.external_id': {'$type': 'string'},
                    '$or': remaining_method,
                },
                {
                    '$unset': {f'oauth.{provider}': ''},
                    '$pull': {'oauth_accounts_linked': provider},
                    '$set': {'updated_at': datetime.now(timezone.utc)},
                    '$inc': {'version': 1},
                },
                return_document=ReturnDocument.AFTER,
            )
        except PyMongoError as e:
            logger.error("Failed to unlink provider", extra={"userId": user_id, "provider": provider, "error": str(e)})
            return None
        return self._to_domain(doc) if doc else None

    def clear_provider_tokens(self, user_id: str) -> bool:
        user = self.get_by_id(user_id)
        if not user:
            return False
        if not user.linked_providers:
            return True
        fields = {}
        for name in user.linked_providers:
            fields[f'oauth.{name}.access_token'] = None
            fields[f'oauth.{name}.refresh_token'] = None
            fields[f'oauth.{name}.token_expiry'] = None
        fields['updated_at'] = datetime.now(timezone.utc)
        return self._update(user_id, {'$set': fields}, "clear provider tokens")

    # ── read operations ──────────────────────────────────────

    def get_by_email(self, email: str) -> User | None:
        """Find a user by email. Return User or None if not found."""
        email = normalize_email(email)
        return self._find_one({'email': email}, {"email": email})

    def get_by_id(self, user_id: str) -> User | None:
        """Find a user by ID. Return User or None if not found."""
        return self._find_one({'_id': user_id}, {"userId": user_id})

    def get_by_provider_id(self, provider: str, external_id: str) -> User | None:
        if provider not in PROVIDERS:
            return None
        return self._find_one(
            {f'oauth.{provider}.external_id': external_id},
            {"provider": provider},
        )

    def get_by_reset_token(self, token_hash: str) -> User | None:
        return self._find_one({'reset_password_token': token_hash}, {})
