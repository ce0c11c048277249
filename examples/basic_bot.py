import os
import re

import domestique

HELP = """domestique.py 示例机器人

指令：
  /meow - 喵
  /echo - 重复你说的话
  /help - 显示此帮助"""

client = domestique.Client()


@client.event
async def on_ready():  # 注册 on_ready 事件
    print(f'以 {client.user} 身份登录（ID：{client.user.id}）')
    print(f'{len(client.user.guilds)} 个频道可用')
    print('------')


@client.event
async def on_message(event: domestique.MessageEvent):
    message = event.message
    content = message.content
    if message.author.name == 'fairlight' and re.match(r'^.+?: ', content):
        # 桥接机器人会在消息前加上原作者的名字
        content = re.sub(r'^.+?: ', '', content, count=1)

    print(f'@{message.author.name}: {content}')
    if not content.startswith('/'):
        return

    command, *args = content[1:].split(' ')
    channel = await message.fetch_channel()  # 未缓存的子频道会在这里被获取
    if command == 'help':
        await channel.send(HELP)
    elif command == 'meow':
        await channel.send('meow')
    elif command == 'echo':
        await channel.send(' '.join(args))
    else:
        await channel.send('未知指令')


if 'USERNAME' not in os.environ or 'PASSWORD' not in os.environ:
    raise SystemExit('请在环境变量 USERNAME 和 PASSWORD 中提供凭据')

client.run(os.environ['USERNAME'], os.environ['PASSWORD'])
