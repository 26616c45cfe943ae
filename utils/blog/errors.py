"""
博客异常定义

重新加载、评论提交、模板渲染等边界处抛出的异常。
"""


class BlogError(Exception):
    """博客相关异常的基类"""
    pass


class ContentLoadError(BlogError):
    """从数据库加载内容失败（连接不可用或查询出错）"""

    def __init__(self, kind: str, message: str):
        super().__init__(f"加载{kind}失败: {message}")
        self.kind = kind


class CommentValidationError(BlogError):
    """评论未通过校验，message 可直接展示给访客"""
    pass


class RenderError(BlogError):
    """模板渲染失败"""

    def __init__(self, template: str, message: str):
        super().__init__(f"Template render error ({template}): {message}")
        self.template = template
