# File: services/errors.py
# 功能：服务层异常定义
# 说明：业务结果（未找到、需要家长同意、积分不足、已兑换）通过结果对象返回，
#       只有数据访问失败才以 ServerError 异常向上抛出


class ServerError(Exception):
    """数据库不可用、数据损坏等非业务错误"""
    pass
