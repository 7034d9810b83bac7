"""常量定义。"""

HTTP_STATUS_OK = 200
HTTP_STATUS_INTERNAL_ERROR = 500

ACCESS_TOKEN_TYPE = "bearer"

# 对象存储中以 '/' 结尾的 key 表示文件夹占位对象
KEY_SEPARATOR = "/"
