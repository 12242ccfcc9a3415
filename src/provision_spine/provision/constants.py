"""Names shared between the provisioner and the functions it deploys."""

# Environment variable carrying the provision-time log level into functions
ENV_LOG_LEVEL = "PROVISION_LOG_LEVEL"
# Environment variable carrying discovery information into functions
ENV_DISCOVERY_INFO = "PROVISION_DISCOVERY_INFO"
# Environment variable naming the user function behind a custom resource
ENV_CUSTOM_RESOURCE = "PROVISION_CUSTOM_RESOURCE"

REQUIRED_FUNCTION_ENV = (ENV_DISCOVERY_INFO, ENV_LOG_LEVEL)

# Lambda runtime for custom-runtime binaries; the executable must be "bootstrap"
LAMBDA_RUNTIME = "provided.al2023"
DEFAULT_BINARY_NAME = "bootstrap"

# Scratch directory for build outputs, archives and rendered templates
SCRATCH_DIRECTORY = ".provision"

TAG_PREFIX = "provision-spine"
TAG_BUILD_ID = f"{TAG_PREFIX}:buildId"
TAG_BUILD_TAGS = f"{TAG_PREFIX}:buildTags"

PIPELINE_TEMPLATE_ENTRY = "cloudformation.json"

LAMBDA_PRINCIPAL = "lambda.amazonaws.com"
BASIC_EXECUTION_POLICY_ARN = "arn:aws:iam::aws:policy/service-role/AWSLambdaBasicExecutionRole"
