"""
生成唯一 slug 的工具函数。

为用户公开主页和评审周期生成友好的 URL 标识符，支持中文转拼音，并确保生成的 slug 在特定模型的表中唯一。
"""
import re
import time
import unicodedata
from pypinyin import lazy_pinyin

SLUG_PATTERN = re.compile(r'^[a-z0-9]+(?:-[a-z0-9]+)*$')


def slugify(text):
    """
    将文本转换为 URL 友好的 slug 格式（小写字母、数字和单个连字符）

    参数:
        text (str): 要转换的文本

    返回:
        str: 格式化后的 slug
    """
    text = str(text or '')
    # 如果是中文，先转为拼音
    if any('一' <= char <= '鿿' for char in text):
        text = '-'.join(lazy_pinyin(text))

    # 标准化 Unicode 字符
    text = unicodedata.normalize('NFKD', text).encode('ascii', 'ignore').decode('ascii')
    text = text.lower()
    # 非字母数字一律视为分隔符
    text = re.sub(r'[^a-z0-9]+', '-', text)
    return text.strip('-')


def is_valid_slug(value):
    return bool(value) and bool(SLUG_PATTERN.match(value))


def generate_unique_slug(text, model, field='slug', exclude_id=None):
    """
    生成唯一的 slug，如果已存在则添加数字后缀

    参数:
        text (str): 要转换为 slug 的文本
        model (db.Model): 需要检查唯一性的 SQLAlchemy 模型
        field (str): 模型上保存 slug 的字段名
        exclude_id (int, optional): 更新时排除的 ID

    返回:
        str: 唯一的 slug
    """
    base_slug = slugify(text) or 'user'
    slug = base_slug
    counter = 1
    column = getattr(model, field)

    while True:
        query = model.query.filter(column == slug)
        if exclude_id is not None:
            query = query.filter(model.id != exclude_id)

        if query.first() is None:
            break

        slug = f"{base_slug}-{counter}"
        counter += 1

        # 防止无限循环，超过一定次数后使用时间戳
        if counter > 100:
            slug = f"{base_slug}-{int(time.time())}"
            break

    return slug
