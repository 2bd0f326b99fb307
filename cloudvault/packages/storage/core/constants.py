"""常量定义：HTTP 状态码与内容存储相关的固定取值。"""

HTTP_STATUS_OK = 200
HTTP_STATUS_BAD_REQUEST = 400
HTTP_STATUS_UNAUTHORIZED = 401
HTTP_STATUS_NOT_FOUND = 404
HTTP_STATUS_CONFLICT = 409
HTTP_STATUS_PAYLOAD_TOO_LARGE = 413
HTTP_STATUS_INTERNAL_SERVER_ERROR = 500

PATH_SEPARATOR = "/"
DEFAULT_MIME_TYPE = "application/octet-stream"

# 本地写入时使用的临时文件命名，遍历命名空间时需跳过
PARTIAL_UPLOAD_PREFIX = ".upload-"
PARTIAL_UPLOAD_SUFFIX = ".part"

# S3 批量删除单次上限
S3_DELETE_BATCH_SIZE = 1000
