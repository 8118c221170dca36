"""
Push token registry: the de-duplicated web and mobile token lists per account.

Every write is a single statement against the (account_type, account_id, token)
unique key, so concurrent logins and prunes on one account cannot lose updates.
"""
import logging
from dataclasses import dataclass, field
from typing import Iterable, List

from dispatch.models import AccountType, Platform, PushToken

logger = logging.getLogger(__name__)


@dataclass
class TokenSet:
    web: List[str] = field(default_factory=list)
    mobile: List[str] = field(default_factory=list)

    @property
    def all(self) -> List[str]:
        """Web then mobile tokens, duplicates and blanks removed, order kept."""
        seen = set()
        out = []
        for token in self.web + self.mobile:
            if token and token not in seen:
                seen.add(token)
                out.append(token)
        return out


def _check_account_type(account_type):
    if account_type not in AccountType.values:
        raise ValueError(f'Unknown account type: {account_type!r}')


class TokenRegistry:

    def add_token(self, account_id, account_type, token, platform=Platform.WEB):
        """Register ``token``. No-op if the account already holds it. Returns True if added."""
        _check_account_type(account_type)
        token = (token or '').strip()
        if not token:
            raise ValueError('token is required')
        if platform not in Platform.values:
            raise ValueError(f'Unknown platform: {platform!r}')
        _, created = PushToken.objects.get_or_create(
            account_type=account_type,
            account_id=account_id,
            token=token,
            defaults={'platform': platform},
        )
        if created:
            logger.info('Registered %s push token for %s:%s', platform, account_type, account_id)
        return created

    def remove_token(self, account_id, account_type, token):
        """Remove ``token`` from whichever list holds it. Returns True if removed."""
        _check_account_type(account_type)
        deleted, _ = PushToken.objects.filter(
            account_type=account_type, account_id=account_id, token=(token or '').strip(),
        ).delete()
        return deleted > 0

    def prune_invalid(self, account_id, account_type, invalid_tokens: Iterable[str]) -> int:
        """Drop every listed token from both lists. Unknown tokens are ignored."""
        _check_account_type(account_type)
        invalid = {t for t in (invalid_tokens or ()) if t}
        if not invalid:
            return 0
        deleted, _ = PushToken.objects.filter(
            account_type=account_type, account_id=account_id, token__in=invalid,
        ).delete()
        if deleted:
            logger.info('Pruned %s invalid push token(s) for %s:%s', deleted, account_type, account_id)
        return deleted

    def tokens_for(self, account_id, account_type) -> TokenSet:
        _check_account_type(account_type)
        token_set = TokenSet()
        rows = PushToken.objects.filter(
            account_type=account_type, account_id=account_id,
        ).values_list('token', 'platform')
        for token, platform in rows:
            if platform == Platform.MOBILE:
                token_set.mobile.append(token)
            else:
                token_set.web.append(token)
        return token_set

    def tokens_for_accounts(self, account_type, account_ids) -> dict:
        """{account_id: [tokens]} for many accounts in one query (broadcasts)."""
        _check_account_type(account_type)
        out = {}
        rows = PushToken.objects.filter(
            account_type=account_type, account_id__in=list(account_ids),
        ).values_list('account_id', 'token')
        for account_id, token in rows:
            out.setdefault(account_id, []).append(token)
        return out
