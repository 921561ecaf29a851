from .completion_gateway import CompletionCapability, CompletionGateway, is_quota_error
from .model_clients import ModelCapabilityRouter

__all__ = ["CompletionCapability", "CompletionGateway", "ModelCapabilityRouter", "is_quota_error"]
