"""BearerManager: issuance and lifecycle entry point.

The manager owns the registries (token types, generators, hashers, audit
drivers, revocation and rotation strategies), builds them from a
``BearerConfig`` and exposes the lifecycle operations on top of a
``TokenStore``.

Example:
    manager = BearerManager.from_config()
    issued = manager.issue("sk", "Billing service", owner=EntityReference("user", "42"))
    print(issued.plain_text_token)  # shown once

    result = manager.authenticate(SimpleRequestContext(token=issued.plain_text_token, ip="10.0.0.1"))
    if result:
        print(result.token.abilities)
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Any

from .audit.drivers import (
    AuditDriver,
    JsonlAuditDriver,
    LoggingAuditDriver,
    MemoryAuditDriver,
    NullAuditDriver,
    emit,
)
from .audit.events import AuditEvent, AuditEventKind
from .config.loader import load_config
from .config.models import BearerConfig
from .derivation import DerivationHierarchy
from .exceptions import (
    InvalidEnvironmentError,
    InvalidTokenTypeError,
    TokenRevokedError,
    UnknownStrategyError,
)
from .guard import AuthenticationResult, Guard, RequestContext
from .ratelimit import RateLimiter, TokenBucketRateLimiter
from .registry import StrategyRegistry
from .revocation.strategies import (
    CascadeDescendantsStrategy,
    CascadeStrategy,
    NoneStrategy,
    PartialCascadeStrategy,
    RevocationStrategy,
    TimedStrategy,
)
from .rotation.strategies import (
    DualValidStrategy,
    GracePeriodStrategy,
    ImmediateStrategy,
    RotationStrategy,
)
from .store.base import TokenStore
from .store.memory import InMemoryTokenStore
from .tokens.abilities import validate_abilities
from .tokens.generators import (
    RandomTokenGenerator,
    SeamTokenGenerator,
    TokenGenerator,
    UuidTokenGenerator,
    parse_token,
)
from .tokens.hashers import Sha256TokenHasher, Sha512TokenHasher, TokenHasher
from .tokens.models import (
    Clock,
    EntityReference,
    NewAccessToken,
    NewTokenGroup,
    Token,
    TokenGroup,
    utcnow,
)
from .tokens.types import TokenType, TokenTypeRegistry

logger = logging.getLogger("bearerkit.manager")

# Per-token ``issue`` arguments ``issue_group`` passes through
_GROUP_OVERRIDES = frozenset(
    {
        "abilities",
        "expires_at",
        "allowed_ips",
        "allowed_domains",
        "rate_limit_per_minute",
        "context",
        "boundary",
    }
)


class BearerManager:
    """Composition root for bearerkit."""

    def __init__(
        self,
        config: BearerConfig | None = None,
        store: TokenStore | None = None,
        audit_driver: AuditDriver | None = None,
        limiter: RateLimiter | None = None,
        clock: Clock = utcnow,
    ):
        """Initialize the manager.

        Args:
            config: Configuration (defaults to built-in defaults)
            store: Token store (defaults to an in-memory store)
            audit_driver: Audit driver overriding ``config.audit.driver``
            limiter: Rate limiter (defaults to a token bucket limiter when
                rate limiting is enabled)
            clock: Time source shared by every component

        Raises:
            UnknownStrategyError: If the config names an unregistered
                generator, hasher, driver or strategy
        """
        self.config = config if config is not None else BearerConfig()
        self.store = store if store is not None else InMemoryTokenStore()
        self.clock = clock

        if limiter is None and self.config.rate_limiting.enabled:
            limiter = TokenBucketRateLimiter(self.config.rate_limiting.burst_multiplier)
        self.limiter = limiter

        self.token_types = TokenTypeRegistry()
        self.generators: StrategyRegistry[TokenGenerator] = StrategyRegistry("token generator")
        self.hashers: StrategyRegistry[TokenHasher] = StrategyRegistry("token hasher")
        self.audit_drivers: StrategyRegistry[AuditDriver] = StrategyRegistry("audit driver")
        self.revocation_strategies: StrategyRegistry[RevocationStrategy] = StrategyRegistry(
            "revocation strategy"
        )
        self.rotation_strategies: StrategyRegistry[RotationStrategy] = StrategyRegistry(
            "rotation strategy"
        )

        self._register_defaults(audit_driver)
        self.hierarchy = DerivationHierarchy(self.store, self.config.derivation, clock=self.clock)

    @classmethod
    def from_config(cls, config: BearerConfig | None = None, store: TokenStore | None = None) -> BearerManager:
        """Build a manager from explicit config or from ``load_config()``."""
        return cls(config=config if config is not None else load_config(), store=store)

    def _register_defaults(self, audit_driver: AuditDriver | None) -> None:
        config = self.config

        for name, token_type in config.types.items():
            self.token_types.register(name, token_type)

        self.generators.register("seam", SeamTokenGenerator())
        self.generators.register("random", RandomTokenGenerator())
        self.generators.register("uuid", UuidTokenGenerator())
        self.generators.set_default(config.generator)

        self.hashers.register("sha256", Sha256TokenHasher())
        self.hashers.register("sha512", Sha512TokenHasher())
        self.hashers.set_default(config.hasher)

        self.audit_drivers.register("memory", MemoryAuditDriver())
        self.audit_drivers.register("null", NullAuditDriver())
        self.audit_drivers.register("logging", LoggingAuditDriver())
        if config.audit.driver == "jsonl":
            self.audit_drivers.register(
                "jsonl",
                JsonlAuditDriver(
                    config.audit.log_path,
                    max_file_size_bytes=config.audit.max_file_size_mb * 1024 * 1024,
                    max_files=config.audit.max_files,
                    redact_sensitive=config.audit.redact_sensitive,
                ),
            )
        if audit_driver is not None:
            self.audit_drivers.register("custom", audit_driver)
            self.audit_drivers.set_default("custom")
        else:
            self.audit_drivers.set_default(config.audit.driver)

        revocation = config.revocation
        self.revocation_strategies.register("none", NoneStrategy(self.store, clock=self.clock))
        self.revocation_strategies.register("cascade", CascadeStrategy(self.store, clock=self.clock))
        self.revocation_strategies.register(
            "partial", PartialCascadeStrategy(self.store, revocation.partial_types, clock=self.clock)
        )
        self.revocation_strategies.register(
            "cascade_descendants",
            CascadeDescendantsStrategy(self.store, config.derivation.max_depth, clock=self.clock),
        )
        self.revocation_strategies.register(
            "timed", TimedStrategy(self.store, revocation.timed_delay_minutes, clock=self.clock)
        )
        self.revocation_strategies.set_default(revocation.default)

        self.rotation_strategies.register("immediate", ImmediateStrategy(self.store, clock=self.clock))
        self.rotation_strategies.register(
            "grace_period",
            GracePeriodStrategy(self.store, config.rotation.grace_period_minutes, clock=self.clock),
        )
        self.rotation_strategies.register("dual_valid", DualValidStrategy(self.store, clock=self.clock))
        self.rotation_strategies.set_default(config.rotation.default)

    # -------------------------------------------------------------------------
    # Registry accessors
    # -------------------------------------------------------------------------

    def token_type(self, name: str) -> TokenType:
        """Get a registered token type.

        Raises:
            InvalidTokenTypeError: If the type is not registered
        """
        try:
            return self.token_types.get(name)
        except UnknownStrategyError:
            raise InvalidTokenTypeError(name) from None

    def token_generator(self, name: str | None = None) -> TokenGenerator:
        return self.generators.get(name) if name else self.generators.default()

    def token_hasher(self, name: str | None = None) -> TokenHasher:
        return self.hashers.get(name) if name else self.hashers.default()

    def audit_driver(self, name: str | None = None) -> AuditDriver:
        return self.audit_drivers.get(name) if name else self.audit_drivers.default()

    def revocation_strategy(self, name: str | None = None) -> RevocationStrategy:
        return self.revocation_strategies.get(name) if name else self.revocation_strategies.default()

    def rotation_strategy(self, name: str | None = None) -> RotationStrategy:
        return self.rotation_strategies.get(name) if name else self.rotation_strategies.default()

    def register_token_type(self, name: str, token_type: TokenType) -> None:
        self.token_types.register(name, token_type)

    def register_token_generator(self, name: str, generator: TokenGenerator) -> None:
        self.generators.register(name, generator)

    def register_token_hasher(self, name: str, hasher: TokenHasher) -> None:
        self.hashers.register(name, hasher)

    def register_audit_driver(self, name: str, driver: AuditDriver) -> None:
        self.audit_drivers.register(name, driver)

    def register_revocation_strategy(self, name: str, strategy: RevocationStrategy) -> None:
        self.revocation_strategies.register(name, strategy)

    def register_rotation_strategy(self, name: str, strategy: RotationStrategy) -> None:
        self.rotation_strategies.register(name, strategy)

    # -------------------------------------------------------------------------
    # Issuance
    # -------------------------------------------------------------------------

    def _resolve_environment(self, token_type: TokenType, environment: str | None) -> str:
        environment = environment or self.config.environments.default
        allowed = [e for e in self.config.environments.allowed if token_type.allows_environment(e)]
        if environment not in allowed:
            raise InvalidEnvironmentError(environment, allowed)
        return environment

    def _create(
        self,
        token_type_name: str,
        environment: str,
        name: str,
        abilities: list[str],
        **fields: Any,
    ) -> NewAccessToken:
        """Generate, hash and persist a token. Callers validate first."""
        token_type = self.token_type(token_type_name)
        generator = self.token_generator(token_type.generator)
        plain_text = generator.generate(token_type.prefix, environment)

        token = Token(
            id=str(uuid.uuid4()),
            type=token_type_name,
            prefix=token_type.prefix,
            environment=environment,
            name=name,
            token=self.token_hasher().hash(plain_text),
            abilities=abilities,
            created_at=self.clock(),
            **fields,
        )
        self.store.save(token)
        return NewAccessToken(access_token=token, plain_text_token=plain_text)

    def issue(
        self,
        token_type: str,
        name: str,
        *,
        owner: EntityReference | None = None,
        environment: str | None = None,
        abilities: list[str] | None = None,
        expires_at: datetime | None = None,
        allowed_ips: list[str] | None = None,
        allowed_domains: list[str] | None = None,
        rate_limit_per_minute: int | None = None,
        context: EntityReference | None = None,
        boundary: EntityReference | None = None,
        group_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> NewAccessToken:
        """Issue a new token.

        Abilities and expiry fall back to the type's defaults.

        Raises:
            InvalidTokenTypeError: If the type is not registered
            InvalidEnvironmentError: If the environment is not allowed
            ValueError: If an ability is not a non-empty string
        """
        type_config = self.token_type(token_type)
        environment = self._resolve_environment(type_config, environment)
        abilities = validate_abilities(abilities if abilities is not None else type_config.abilities)
        if expires_at is None:
            expires_at = type_config.default_expires_at(self.clock())

        issued = self._create(
            token_type,
            environment,
            name,
            abilities,
            owner=owner,
            expires_at=expires_at,
            allowed_ips=allowed_ips,
            allowed_domains=allowed_domains,
            rate_limit_per_minute=rate_limit_per_minute,
            context=context,
            boundary=boundary,
            group_id=group_id,
            metadata=dict(metadata or {}),
        )
        token = issued.access_token
        self._emit(AuditEventKind.CREATED, token, {"type": token.type, "environment": token.environment})
        logger.info(f"Issued {token.type} token '{name}' ({token.id}) in {token.environment}")
        return issued

    def issue_group(
        self,
        name: str,
        *,
        types: list[str] | None = None,
        owner: EntityReference | None = None,
        environment: str | None = None,
        metadata: dict[str, Any] | None = None,
        **overrides: Any,
    ) -> NewTokenGroup:
        """Issue one token per type, linked as a group.

        Every argument is validated before anything is persisted.

        Args:
            name: Group name (also used as each token's name)
            types: Token types to issue (defaults to the secret, publishable
                and restricted helper types)
            owner: Owner of the group and its tokens
            environment: Environment for every token
            metadata: Group metadata
            **overrides: Extra ``issue`` arguments applied to every token

        Raises:
            InvalidTokenTypeError: If a type is not registered
            InvalidEnvironmentError: If a type does not allow the environment
            TypeError: If an override is not an ``issue`` argument
            ValueError: If an ability in the overrides is invalid
        """
        unknown = set(overrides) - _GROUP_OVERRIDES
        if unknown:
            raise TypeError(f"Unsupported group token arguments: {', '.join(sorted(unknown))}")
        if overrides.get("abilities") is not None:
            overrides["abilities"] = validate_abilities(overrides["abilities"])

        helpers = self.config.group_helpers
        types = types or [helpers["secret"], helpers["publishable"], helpers["restricted"]]
        for token_type in types:
            type_config = self.token_type(token_type)
            self._resolve_environment(type_config, environment)

        group = TokenGroup(
            id=str(uuid.uuid4()),
            name=name,
            owner=owner,
            metadata=dict(metadata or {}),
            created_at=self.clock(),
            helpers=dict(helpers),
        )
        self.store.save_group(group)

        access_tokens: dict[str, NewAccessToken] = {}
        for token_type in types:
            issued = self.issue(
                token_type,
                name,
                owner=owner,
                environment=environment,
                group_id=group.id,
                **overrides,
            )
            access_tokens[token_type] = issued
            group.tokens.append(issued.access_token)

        logger.info(f"Issued token group '{name}' ({group.id}) with types {', '.join(types)}")
        return NewTokenGroup(group=group, access_tokens=access_tokens)

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def find_token(self, plain_text: str) -> Token | None:
        """Look up a token by its plaintext."""
        if parse_token(plain_text) is None:
            return None
        hasher = self.token_hasher()
        token = self.store.find_by_hash(hasher.hash(plain_text))
        if token is None or not hasher.verify(plain_text, token.token):
            return None
        return token

    def group(self, group_id: str) -> TokenGroup | None:
        group = self.store.find_group(group_id)
        if group is not None:
            group.helpers = dict(self.config.group_helpers)
        return group

    def sibling(self, token: Token, token_type: str) -> Token | None:
        """Another token of the given type from the same group."""
        if token.group_id is None:
            return None
        for candidate in self.store.load_group(token.group_id):
            if candidate.type == token_type and candidate.id != token.id:
                return candidate
        return None

    def tokens_for(self, owner: EntityReference) -> list[Token]:
        return self.store.list_tokens(owner)

    # -------------------------------------------------------------------------
    # Revocation
    # -------------------------------------------------------------------------

    def _revocation_strategy_for(self, token: Token, strategy: str | None) -> RevocationStrategy:
        name = strategy or self.config.revocation.modes.get(token.type)
        return self.revocation_strategy(name)

    def preview_revocation(self, token: Token, strategy: str | None = None) -> list[Token]:
        """Tokens a revocation would touch, without changing anything."""
        return self._revocation_strategy_for(token, strategy).affected_tokens(token)

    def revoke(self, token: Token, strategy: str | None = None) -> list[Token]:
        """Revoke a token with the given strategy or its type's default.

        Revoking an already revoked token changes nothing and raises nothing.

        Returns:
            Tokens whose state changed
        """
        revocation = self._revocation_strategy_for(token, strategy)
        changed = revocation.revoke(token)

        correlation_id = str(uuid.uuid4())
        for revoked in changed:
            self._emit(
                AuditEventKind.REVOKED,
                revoked,
                {
                    "strategy": revocation.name,
                    "revoked_by": token.id,
                    "effective_at": revoked.revoked_at.isoformat(),
                },
                correlation_id=correlation_id,
            )
        return changed

    # -------------------------------------------------------------------------
    # Rotation
    # -------------------------------------------------------------------------

    def rotate(self, token: Token, strategy: str | None = None) -> NewAccessToken:
        """Replace a token with a fresh one carrying the same settings.

        Raises:
            TokenRevokedError: If the token is already revoked
        """
        old = self.store.find(token.id) or token
        now = self.clock()
        if old.is_revoked(now):
            raise TokenRevokedError(old.revoked_at)

        rotation = self.rotation_strategy(strategy or self.config.rotation.modes.get(old.type))

        issued = self._create(
            old.type,
            old.environment,
            old.name,
            list(old.abilities),
            expires_at=old.expires_at,
            allowed_ips=list(old.allowed_ips) if old.allowed_ips is not None else None,
            allowed_domains=list(old.allowed_domains) if old.allowed_domains is not None else None,
            rate_limit_per_minute=old.rate_limit_per_minute,
            group_id=old.group_id,
            owner=old.owner,
            context=old.context,
            boundary=old.boundary,
            parent_id=old.parent_id,
            depth=old.depth,
            replaces_id=old.id,
            metadata={**old.metadata, "rotated_from": old.id},
            derived_metadata=dict(old.derived_metadata),
        )
        new = issued.access_token

        self.store.link_rotation(old.id, new.id, now)
        old.replaced_by_id = new.id
        old.rotated_at = now
        rotation.rotate(old, new)

        current = self.store.find(old.id) or old
        token.replaced_by_id = current.replaced_by_id
        token.rotated_at = current.rotated_at
        token.revoked_at = current.revoked_at

        self._emit(
            AuditEventKind.ROTATED,
            old,
            {
                "new_token_id": new.id,
                "strategy": rotation.name,
                "grace_period_minutes": rotation.grace_period_minutes(),
            },
        )
        return issued

    def rotation_chain(self, token: Token) -> list[Token]:
        """Every token in the token's rotation chain, oldest first."""
        first = token
        seen = {token.id}
        while first.replaces_id and first.replaces_id not in seen:
            previous = self.store.find(first.replaces_id)
            if previous is None:
                break
            seen.add(previous.id)
            first = previous

        chain = [first]
        seen = {first.id}
        current = first
        while current.replaced_by_id and current.replaced_by_id not in seen:
            following = self.store.find(current.replaced_by_id)
            if following is None:
                break
            seen.add(following.id)
            chain.append(following)
            current = following
        return chain

    def is_old_token_valid(self, token: Token, strategy: str | None = None) -> bool:
        """Whether a rotated-out token still authenticates."""
        rotation = self.rotation_strategy(strategy or self.config.rotation.modes.get(token.type))
        return rotation.is_old_token_valid(token, self.clock())

    # -------------------------------------------------------------------------
    # Derivation
    # -------------------------------------------------------------------------

    def derive(
        self,
        parent: Token,
        name: str,
        abilities: list[str],
        *,
        expires_at: datetime | None = None,
        allowed_ips: list[str] | None = None,
        allowed_domains: list[str] | None = None,
        rate_limit_per_minute: int | None = None,
        metadata: dict[str, Any] | None = None,
        derived_metadata: dict[str, Any] | None = None,
    ) -> NewAccessToken:
        """Derive a child token from a parent.

        Nothing is persisted unless every check passes.

        Raises:
            CannotDeriveTokenError: If the parent cannot derive
            InvalidDerivedAbilitiesError: If abilities exceed the parent's
            InvalidDerivedExpirationError: If the child would outlive the parent
        """
        parent = self.store.find(parent.id) or parent
        abilities = validate_abilities(abilities)
        child_expires_at = self.hierarchy.validate(parent, abilities, expires_at)
        restrictions = self.hierarchy.resolve_restrictions(
            parent,
            allowed_ips=allowed_ips,
            allowed_domains=allowed_domains,
            rate_limit_per_minute=rate_limit_per_minute,
        )

        issued = self._create(
            parent.type,
            parent.environment,
            name,
            abilities,
            expires_at=child_expires_at,
            allowed_ips=restrictions.allowed_ips,
            allowed_domains=restrictions.allowed_domains,
            rate_limit_per_minute=restrictions.rate_limit_per_minute,
            owner=parent.owner,
            context=parent.context,
            boundary=parent.boundary,
            parent_id=parent.id,
            depth=parent.depth + 1,
            metadata={**parent.metadata, **(metadata or {})},
            derived_metadata=dict(derived_metadata or {}),
        )
        child = issued.access_token
        self._emit(AuditEventKind.DERIVED, child, {"parent_token_id": parent.id, "depth": child.depth})
        logger.info(f"Derived token {child.id} from {parent.id} at depth {child.depth}")
        return issued

    # -------------------------------------------------------------------------
    # Authentication
    # -------------------------------------------------------------------------

    def guard(self) -> Guard:
        """A guard wired to the current default hasher and audit driver."""
        return Guard(
            store=self.store,
            hasher=self.token_hasher(),
            audit=self.audit_driver(),
            token_types=self.token_types,
            rate_limiting=self.config.rate_limiting,
            limiter=self.limiter,
            expiration=self.config.expiration,
            clock=self.clock,
        )

    def authenticate(self, request: RequestContext) -> AuthenticationResult:
        return self.guard().authenticate(request)

    # -------------------------------------------------------------------------

    def _emit(
        self,
        kind: AuditEventKind,
        token: Token,
        metadata: dict[str, Any],
        correlation_id: str | None = None,
    ) -> None:
        emit(
            self.audit_driver(),
            AuditEvent(
                token_id=token.id,
                kind=kind,
                metadata=metadata,
                timestamp=self.clock(),
                correlation_id=correlation_id,
            ),
        )
