from pr_reviewer.services.rules.parser import (
    CursorRule,
    CursorRulesConfig,
    CursorRulesParser,
    RuleType,
    match_glob,
)

__all__ = ["CursorRule", "CursorRulesConfig", "CursorRulesParser", "RuleType", "match_glob"]
