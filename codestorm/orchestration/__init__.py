from .classifier import Intent, IntentClassifier, IntentContext, Rule, RuleClassifier

__all__ = ["Intent", "IntentClassifier", "IntentContext", "Rule", "RuleClassifier"]
