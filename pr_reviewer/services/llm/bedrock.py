import asyncio
import json
from typing import Any

import boto3
import structlog
from botocore.exceptions import BotoCoreError, ClientError

from pr_reviewer.core.config import DEFAULT_MODELS
from pr_reviewer.core.exceptions import LLMError, LLMRateLimitError
from pr_reviewer.services.llm.base import LLMProvider

logger = structlog.get_logger()


class BedrockProvider(LLMProvider):
    """
    AWS Bedrock provider.

    Bedrock hosts several model families, each with its own request and
    response shape; the family is picked from the model id prefix. Calls go
    through the synchronous boto3 client on a worker thread.
    """

    # Credentials are checked against STS once per process
    _credentials_validated = False

    def __init__(
        self,
        region: str = "us-east-1",
        model: str | None = None,
        deterministic_mode: bool = True,
        access_key_id: str | None = None,
        secret_access_key: str | None = None,
        anthropic_version: str = "bedrock-2023-05-31",
    ) -> None:
        super().__init__(deterministic_mode)
        if not region:
            raise LLMError("AWS Bedrock region is required")
        self._model = model or DEFAULT_MODELS["bedrock"]
        self.region = region
        self.anthropic_version = anthropic_version
        self._access_key_id = access_key_id
        self._secret_access_key = secret_access_key
        self._client: Any = None
        self._sts_client: Any = None

    @property
    def name(self) -> str:
        return "bedrock"

    @property
    def model(self) -> str:
        return self._model

    def is_available(self) -> bool:
        # The default credential chain may supply credentials at call time
        return True

    def _client_kwargs(self) -> dict[str, Any]:
        kwargs: dict[str, Any] = {"region_name": self.region}
        if self._access_key_id and self._secret_access_key:
            kwargs["aws_access_key_id"] = self._access_key_id
            kwargs["aws_secret_access_key"] = self._secret_access_key
        return kwargs

    def _get_client(self) -> Any:
        if self._client is None:
            if self._access_key_id and self._secret_access_key:
                logger.info("Using explicit AWS access key credentials for Bedrock")
            else:
                logger.info("Using default AWS credential chain for Bedrock")
            self._client = boto3.client("bedrock-runtime", **self._client_kwargs())
            logger.info("Bedrock client initialized", region=self.region, model=self._model)
        return self._client

    def _get_sts_client(self) -> Any:
        if self._sts_client is None:
            self._sts_client = boto3.client("sts", **self._client_kwargs())
        return self._sts_client

    def validate_credentials(self) -> None:
        """
        Make a test STS call so authentication problems surface with a clear
        message before the first model invocation.

        Raises:
            LLMError: If the credentials are rejected.
        """
        logger.info("Validating AWS credentials")
        try:
            identity = self._get_sts_client().get_caller_identity()
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code", "")
            logger.error("AWS credential validation failed", code=code, error=str(e))
            if code in ("UnrecognizedClientException", "InvalidClientTokenId"):
                raise LLMError(
                    f"AWS credentials are invalid or expired: {e}. "
                    "Please check bedrock_access_key_id and bedrock_secret_access_key."
                ) from e
            if code in ("AccessDenied", "AccessDeniedException"):
                raise LLMError(
                    f"AWS credentials lack STS permissions: {e}. "
                    "The credentials need sts:GetCallerIdentity permission."
                ) from e
            raise LLMError(f"AWS credential validation failed: {e}") from e
        except BotoCoreError as e:
            logger.error("AWS credential validation failed", error=str(e))
            raise LLMError(f"AWS credential validation failed: {e}") from e

        logger.info(
            "AWS credentials validated",
            account=identity.get("Account"),
            arn=identity.get("Arn"),
        )

    def build_request_body(
        self, system_prompt: str | None, user_prompt: str, max_tokens: int
    ) -> dict[str, Any]:
        """Request body in the shape the model family expects."""
        combined = f"{system_prompt}\n\n{user_prompt}" if system_prompt else user_prompt

        if self._model.startswith("anthropic.claude"):
            return {
                "anthropic_version": self.anthropic_version,
                "max_tokens": max_tokens,
                "temperature": self.temperature,
                "messages": [{"role": "user", "content": combined}],
            }
        if self._model.startswith("meta.llama"):
            prompt = f"Human: {user_prompt}\n\nAssistant:"
            if system_prompt:
                prompt = f"{system_prompt}\n\n{prompt}"
            return {
                "prompt": prompt,
                "max_gen_len": max_tokens,
                "temperature": self.temperature,
                "top_p": 0.9,
            }
        if self._model.startswith("amazon.titan"):
            return {
                "inputText": combined,
                "textGenerationConfig": {
                    "maxTokenCount": max_tokens,
                    "temperature": self.temperature,
                    "topP": 0.9,
                    "stopSequences": [],
                },
            }
        return {
            "prompt": combined,
            "max_tokens": max_tokens,
            "temperature": self.temperature,
        }

    def extract_text(self, body: dict[str, Any]) -> str:
        """Pull the generated text out of a response body."""
        if self._model.startswith("anthropic.claude"):
            content = body.get("content") or [{}]
            return str(content[0].get("text") or "")
        if self._model.startswith("meta.llama"):
            return str(body.get("generation") or "")
        if self._model.startswith("amazon.titan"):
            results = body.get("results") or [{}]
            return str(results[0].get("outputText") or "")
        return str(body.get("completion") or body.get("text") or body.get("generated_text") or "")

    def _error_for(self, e: ClientError) -> LLMError:
        code = e.response.get("Error", {}).get("Code", "")
        message = e.response.get("Error", {}).get("Message", str(e))

        if code == "UnrecognizedClientException":
            return LLMError(
                f"AWS Bedrock authentication failed: {message}.\n\n"
                "Possible causes:\n"
                "1. Invalid or expired AWS credentials\n"
                "2. Missing AWS credentials\n"
                f"3. Incorrect region configuration (current: {self.region})\n"
                "4. IAM permissions missing for Bedrock service\n\n"
                "Troubleshooting steps:\n"
                "- Verify AWS credentials are valid and not expired\n"
                "- Ensure the IAM user/role has bedrock:InvokeModel permissions\n"
                f"- Check that the region {self.region} supports Bedrock\n"
                "- Verify the bedrock_access_key_id and bedrock_secret_access_key secrets are set",
                details={"code": code, "region": self.region},
            )
        if code == "AccessDeniedException":
            return LLMError(
                f"AWS Bedrock access denied: {message}. Check IAM permissions for "
                f"bedrock:InvokeModel and model access for {self._model}",
                details={"code": code, "model": self._model},
            )
        if code == "ValidationException":
            return LLMError(
                f"AWS Bedrock validation error: {message}. "
                f"Check model ID and request parameters for {self._model}",
                details={"code": code, "model": self._model},
            )
        if code == "ThrottlingException":
            return LLMRateLimitError(
                f"AWS Bedrock throttling: {message}. Too many requests, please retry later",
                details={"code": code},
            )
        if code == "ServiceUnavailableException":
            return LLMError(
                f"AWS Bedrock service unavailable: {message}. "
                "The service may be temporarily down",
                details={"code": code},
            )
        return LLMError(f"Bedrock model invocation failed: {message}", details={"code": code})

    def _invoke(self, body: dict[str, Any]) -> dict[str, Any]:
        response = self._get_client().invoke_model(
            modelId=self._model,
            body=json.dumps(body),
            contentType="application/json",
            accept="application/json",
        )
        result: dict[str, Any] = json.loads(response["body"].read())
        return result

    async def _complete(
        self,
        system_prompt: str | None,
        user_prompt: str,
        max_tokens: int,
        json_mode: bool = False,
    ) -> str:
        if not BedrockProvider._credentials_validated:
            await asyncio.to_thread(self.validate_credentials)
            BedrockProvider._credentials_validated = True

        body = self.build_request_body(system_prompt, user_prompt, max_tokens)
        try:
            response_body = await asyncio.to_thread(self._invoke, body)
        except ClientError as e:
            logger.error("Bedrock API error", model=self._model, error=str(e))
            raise self._error_for(e) from e
        except BotoCoreError as e:
            logger.error("Bedrock API error", model=self._model, error=str(e))
            raise LLMError(f"Bedrock model invocation failed: {e}") from e

        return self.extract_text(response_body)
